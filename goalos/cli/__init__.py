"""GoalOS command-line interface"""
