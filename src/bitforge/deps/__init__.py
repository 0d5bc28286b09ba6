from bitforge.deps.checker import DependencyChecker, confirm_message

__all__ = ["DependencyChecker", "confirm_message"]
