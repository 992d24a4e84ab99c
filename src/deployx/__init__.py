"""deployx - environment promotion and canary deployment orchestrator."""

__version__ = "0.1.0"
