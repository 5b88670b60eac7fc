"""Batch splitting and SQLCMD variable substitution for script files."""

import logging
import re
from typing import Dict, List

logger = logging.getLogger(__name__)

# A separator line: GO, optional whitespace, optional repeat count,
# optional inline comment. Case-insensitive like sqlcmd.
BATCH_SEPARATOR = re.compile(
    r"^\s*GO(?:\s+(?P<count>\d+))?\s*(?:--.*)?$", re.IGNORECASE
)

SQLCMD_VARIABLE = re.compile(r"\$\((?P<name>[A-Za-z_][A-Za-z0-9_]*)\)")


def split_batches(text: str) -> List[str]:
    """
    Split a script into batches on separator lines.

    A repeat count after the separator (``GO 3``) is accepted but the
    batch is still executed once. Exported scripts rely on this, so it
    must not be changed to repeat the batch.

    Args:
        text: Full script text

    Returns:
        Non-empty batches, in order
    """
    batches: List[str] = []
    current: List[str] = []

    for line in text.splitlines():
        match = BATCH_SEPARATOR.match(line)
        if match is None:
            current.append(line)
            continue

        count = match.group("count")
        if count and int(count) > 1:
            logger.debug(f"Ignoring batch repeat count {count}; executing once")

        batch = "\n".join(current).strip()
        if batch:
            batches.append(batch)
        current = []

    batch = "\n".join(current).strip()
    if batch:
        batches.append(batch)

    return batches


def substitute_variables(text: str, variables: Dict[str, str]) -> str:
    """
    Replace ``$(NAME)`` placeholders with configured values.

    Unknown placeholders are left untouched.

    Args:
        text: Script text
        variables: Variable values by name

    Returns:
        Script text with known variables substituted
    """
    if not variables:
        return text

    def replace(match: re.Match) -> str:
        name = match.group("name")
        if name in variables:
            return str(variables[name])
        logger.warning(f"No value configured for SQLCMD variable $({name})")
        return match.group(0)

    return SQLCMD_VARIABLE.sub(replace, text)
