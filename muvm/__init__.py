"""A stack-based bytecode virtual machine: values, hosts, built-ins and the machine."""

__version__ = "0.2.0"
__all__ = ["values", "host", "builtins", "machine"]