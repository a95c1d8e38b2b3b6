"""Project a wizard's template and answers into typed CRM operation lists.

Pure and deterministic: no I/O, no clock. Pages and blocks are walked in
template order; each block's answer is looked up by (page id, block id),
and answers for blocks that are not in the template are never consulted.

Per block type:
- custom_field: one op; only ``create`` mode is acted on by the executor
- custom_value: skipped when the trimmed answer is empty
- trigger_link: skipped when no redirect target resolves
- tag: one op carrying every name from a list or comma-separated string
- media: one op per uploaded file
- anything else (text, dividers, ...): ignored
"""

from __future__ import annotations

from typing import Any

from src.wizard_sync.onboarding.schemas import (
    BlockAnswer,
    BlockMode,
    BlockType,
    TemplateBlock,
    WizardRead,
)
from src.wizard_sync.sync.schemas import (
    CustomFieldConfig,
    CustomFieldOperation,
    CustomValueOperation,
    MediaOperation,
    SyncOperationPayload,
    TagOperation,
    TriggerLinkOperation,
)


def _answer_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, list):
        return ", ".join(str(item) for item in value if item is not None)
    return str(value)


def _tag_names(value: Any) -> list[str]:
    if isinstance(value, list):
        candidates = [str(item) for item in value if item is not None]
    elif isinstance(value, str):
        candidates = value.split(",")
    else:
        candidates = []
    return [name.strip() for name in candidates if name.strip()]


def _entity_str(block: TemplateBlock, key: str) -> str:
    value = block.new_entity.get(key)
    return str(value) if value else ""


def _field_op(block: TemplateBlock, answer: BlockAnswer) -> CustomFieldOperation:
    entity = block.new_entity
    options = entity.get("options")
    config = CustomFieldConfig(
        name=_entity_str(block, "name") or block.title or f"Field {block.id}",
        data_type=_entity_str(block, "dataType") or "TEXT",
        placeholder=_entity_str(block, "placeholder"),
        options=options if isinstance(options, list) else [],
    )
    return CustomFieldOperation(
        block_id=block.id,
        mode=block.mode or BlockMode.EXISTING.value,
        reference_id=block.reference_id or None,
        config=config,
        label=block.title,
        value=answer.value if answer.value not in ("", None) else None,
    )


def _value_op(block: TemplateBlock, answer: BlockAnswer) -> CustomValueOperation | None:
    value = _answer_text(answer.value)
    if not value.strip():
        return None
    return CustomValueOperation(
        block_id=block.id,
        mode=block.mode or BlockMode.EXISTING.value,
        reference_id=block.reference_id or None,
        name=_entity_str(block, "name") or block.title or f"Value {block.id}",
        value=value,
    )


def _link_op(block: TemplateBlock, answer: BlockAnswer) -> TriggerLinkOperation | None:
    redirect_to = _answer_text(answer.value).strip() or _entity_str(block, "redirectTo").strip()
    if not redirect_to:
        return None
    return TriggerLinkOperation(
        block_id=block.id,
        mode=block.mode or BlockMode.EXISTING.value,
        reference_id=block.reference_id or None,
        name=_entity_str(block, "name") or block.title or f"Trigger Link {block.id}",
        redirect_to=redirect_to,
    )


def build_payload(wizard: WizardRead) -> SyncOperationPayload:
    """Build the five operation lists for a wizard.

    Args:
        wizard: Wizard with template and per-page answers loaded.

    Returns:
        SyncOperationPayload in template page/block order.
    """
    payload = SyncOperationPayload(location_id=wizard.location_id)
    if wizard.template is None:
        return payload

    answers_by_page = {step.step_key: step.blocks for step in wizard.steps}

    for page in wizard.template.pages:
        page_answers = answers_by_page.get(page.id, {})
        for block in page.blocks:
            answer = page_answers.get(block.id) or BlockAnswer()

            if block.type == BlockType.CUSTOM_FIELD.value:
                payload.custom_fields.append(_field_op(block, answer))

            elif block.type == BlockType.CUSTOM_VALUE.value:
                value_op = _value_op(block, answer)
                if value_op is not None:
                    payload.custom_values.append(value_op)

            elif block.type == BlockType.TRIGGER_LINK.value:
                link_op = _link_op(block, answer)
                if link_op is not None:
                    payload.trigger_links.append(link_op)

            elif block.type == BlockType.TAG.value:
                payload.tags.append(
                    TagOperation(
                        block_id=block.id,
                        mode=block.mode or BlockMode.EXISTING.value,
                        reference_id=block.reference_id or None,
                        names=_tag_names(answer.value),
                    )
                )

            elif block.type == BlockType.MEDIA.value:
                for upload in answer.uploads:
                    payload.media.append(
                        MediaOperation(
                            block_id=block.id,
                            storage_key=upload.storage_key,
                            name=upload.name,
                            mime=upload.mime,
                        )
                    )

    return payload
