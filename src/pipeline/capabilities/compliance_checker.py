# src/pipeline/capabilities/compliance_checker.py — v1
"""Compliance — originality score and similar-song report for the draft."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from songsmith.core.errors import ClassifiedError, ErrorKind
from songsmith.core.lyrics import clean_and_parse_json
from songsmith.core.models import ComplianceReport
from songsmith.llm.models import Message
from songsmith.pipeline.capabilities.base_capability import (
    BaseCapability,
    CapabilityResult,
    build_result,
)
from songsmith.pipeline.capabilities.prompts import COMPLIANCE_SCHEMA, SYSTEM_COMPLIANCE

if TYPE_CHECKING:
    from songsmith.llm.base_client import BaseLLMClient


class ComplianceChecker(BaseCapability):
    """Score the originality of the draft lyrics."""

    @property
    def name(self) -> str:
        return "compliance"

    @property
    def description(self) -> str:
        return "Check the draft for copyright and originality risks"

    async def invoke(self, state: Any, llm: BaseLLMClient) -> CapabilityResult:
        response = await llm.complete(
            [Message(role="user", content=f"Analyze these lyrics for copyright risks:\n{state.draft}")],
            system=SYSTEM_COMPLIANCE,
            temperature=0.1,
            response_schema=COMPLIANCE_SCHEMA,
        )
        data = clean_and_parse_json(response.content)
        try:
            report = ComplianceReport.model_validate(data)
        except ValueError as exc:
            raise ClassifiedError(
                ErrorKind.PARSING, f"Compliance JSON did not match the schema: {exc}", cause=exc,
            ) from exc
        return build_result(
            self.name, text=report.verdict, data=report.model_dump(), response=response,
        )
