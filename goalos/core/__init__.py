"""Core primitives shared by every GoalOS layer: errors and the clock."""
