"""Merge non-blocking handler outputs into one response."""

from __future__ import annotations

from typing import Optional, Sequence

from dothooks.models import Decision, GenericEventOutput, HookOutputBase


def aggregate(
    outputs: Sequence[HookOutputBase],
    output_model: type[HookOutputBase] = GenericEventOutput,
) -> HookOutputBase:
    """Combine *outputs* (in execution order) into a single success value.

    Non-empty ``additional_context`` values are joined with a blank line,
    non-empty ``system_message`` values with a single newline. The result
    always approves and continues: blocking outputs never reach here.

    Args:
        outputs: Non-blocking outputs in handler execution order.
        output_model: Model of the returned value, normally the event
            contract's output model.
    """
    if not outputs:
        return output_model.success()

    return output_model(
        decision=Decision.APPROVE,
        continue_=True,
        additional_context=_join([o.additional_context for o in outputs], "\n\n"),
        system_message=_join([o.system_message for o in outputs], "\n"),
    )


def _join(values: Sequence[Optional[str]], separator: str) -> Optional[str]:
    present = [value for value in values if value]
    return separator.join(present) if present else None
