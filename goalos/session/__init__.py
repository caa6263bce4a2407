"""Human-readable session context rendering"""

from goalos.session.context import generate_detailed_context, generate_start_context

__all__ = ["generate_detailed_context", "generate_start_context"]
