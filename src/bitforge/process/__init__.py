from bitforge.process.runner import Command, ProcessRunner

__all__ = ["Command", "ProcessRunner"]
