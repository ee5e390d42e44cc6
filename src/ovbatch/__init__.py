"""ovbatch - batch VM provisioning for oVirt from a CSV file

Philosophy:
- Ruthless simplicity
- Brick architecture (self-contained modules)
- One failed VM never stops the rest of the batch
- Fail fast on structural problems, before anything is created

The ovbatch CLI reads one VM per CSV record, resolves each record's template,
creates the VM with a static network configuration and starts it, running up
to a configured number of provisioning jobs in parallel.
"""

__version__ = "0.1.0"
__all__ = ["__version__"]
