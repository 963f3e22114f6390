"""reqtask - declarative HTTP tasks with variable interpolation."""

__version__ = "0.1.0"
