"""Base exception for Magic Wizards.

Concrete errors live next to the code that raises them.
"""


class WizardError(Exception):
    """Base class for every error the runtime raises on purpose."""
    pass
