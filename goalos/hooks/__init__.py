"""
Session hooks

Console-script entry points run by the host at session start and end.
They read a JSON payload on stdin and always exit 0: store failures are
logged as warnings, never raised to the host.
"""
