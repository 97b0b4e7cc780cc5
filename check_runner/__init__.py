"""DC/OS check runner — executes configured node and cluster checks."""

__version__ = "0.4.0"
