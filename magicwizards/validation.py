"""
Input validation for Magic Wizards.

Validates caller inputs at the boundary before any tenant lookup or
provider call is made.
"""

from dataclasses import dataclass
from typing import Any, Optional

from magicwizards.errors import WizardError


class ValidationError(WizardError, ValueError):
    """Raised when input validation fails."""
    pass


SANDBOX_TENANT_ID = "__mock__"
WIZARD_PREFIX = "/wizard "
CONTINUE_PROMPT = "Continue with the prior context."
MAX_PROMPT_LENGTH = 100_000


@dataclass(frozen=True)
class WizardSelection:
    """Wizard id and prompt text after the inline prefix is stripped."""
    wizard_id: str
    prompt: str


def validate_prompt(prompt: Any) -> str:
    """
    Validate and normalize a prompt.

    Args:
        prompt: Raw prompt from the caller

    Returns:
        The stripped prompt

    Raises:
        ValidationError: If prompt is missing, empty or too long
    """
    if prompt is None:
        raise ValidationError("Missing or empty prompt")

    if not isinstance(prompt, str):
        raise ValidationError(f"Prompt must be a string, got {type(prompt).__name__}")

    stripped = prompt.strip()
    if not stripped:
        raise ValidationError("Missing or empty prompt")

    if len(stripped) > MAX_PROMPT_LENGTH:
        raise ValidationError(
            f"Prompt too long: {len(stripped):,} characters "
            f"(max: {MAX_PROMPT_LENGTH:,})"
        )

    return stripped


def validate_tenant_id(tenant_id: Any) -> str:
    """
    Validate and normalize a tenant id.

    Raises:
        ValidationError: If tenant id is missing or empty
    """
    if tenant_id is None or (isinstance(tenant_id, str) and not tenant_id.strip()):
        raise ValidationError(
            f"Missing tenantId. Use '{SANDBOX_TENANT_ID}' for local testing without a DB tenant."
        )

    if not isinstance(tenant_id, str):
        raise ValidationError(f"tenantId must be a string, got {type(tenant_id).__name__}")

    return tenant_id.strip()


def is_sandbox_tenant(tenant_id: str) -> bool:
    return tenant_id == SANDBOX_TENANT_ID


def apply_wizard_id(prompt: str, wizard_id: Optional[str]) -> str:
    """Prefix the prompt with an explicit wizard id unless it already selects one."""
    if wizard_id and wizard_id.strip() and not prompt.startswith(WIZARD_PREFIX):
        return f"{WIZARD_PREFIX}{wizard_id.strip()} {prompt}"
    return prompt


def extract_wizard_selection(text: str, default_wizard_id: str) -> WizardSelection:
    """
    Split an inline ``/wizard <id> <prompt>`` prefix off a message.

    Messages without the prefix keep the default wizard. A prefix with no
    remaining text asks the wizard to continue.
    """
    if not text.startswith(WIZARD_PREFIX):
        return WizardSelection(wizard_id=default_wizard_id, prompt=text)

    _, candidate, *rest = text.split(" ") + [""]
    prompt = " ".join(rest).strip()
    return WizardSelection(
        wizard_id=candidate or default_wizard_id,
        prompt=prompt or CONTINUE_PROMPT,
    )
