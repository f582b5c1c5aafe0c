from __future__ import annotations

import json
import re
import time
from dataclasses import dataclass
from typing import Any, Sequence

import structlog

from http_analytics.llm import GenerationError, TextGenerator
from http_analytics.models import INSIGHT_SEVERITIES, Insight, ProbeResult
from http_analytics.reporting.report_generator import INSIGHT_TEMPLATE, render_template


logger = structlog.get_logger(__name__)

_FENCE_RE = re.compile(r"```(?:json)?\n?")


class InsightParseError(ValueError):
    """The model reply could not be read as an insight object."""


@dataclass(frozen=True)
class InsightReply:
    analysis: str
    root_causes: list[str]
    recommendations: list[str]
    severity: str


def strip_code_fences(text: str) -> str:
    return _FENCE_RE.sub("", text or "").strip()


def _string_list(value: Any) -> list[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [value]
    if isinstance(value, list):
        return [str(v) for v in value if v is not None]
    raise InsightParseError(f"Expected a list of strings, got {type(value).__name__}")


def parse_insight_reply(text: str) -> InsightReply:
    """Parse a model reply into an :class:`InsightReply`.

    Code fences are removed first. If the remaining text is not a JSON object
    on its own, the outermost ``{...}`` span is tried.
    """
    cleaned = strip_code_fences(text)
    if not cleaned:
        raise InsightParseError("Empty reply")

    try:
        data = json.loads(cleaned)
    except json.JSONDecodeError:
        start, end = cleaned.find("{"), cleaned.rfind("}")
        if start < 0 or end <= start:
            raise InsightParseError("Reply contains no JSON object")
        try:
            data = json.loads(cleaned[start : end + 1])
        except json.JSONDecodeError as e:
            raise InsightParseError(f"Invalid JSON: {e}") from e

    if not isinstance(data, dict):
        raise InsightParseError("Reply is not a JSON object")

    analysis = data.get("analysis")
    if not isinstance(analysis, str) or not analysis.strip():
        raise InsightParseError("Reply has no analysis")

    severity = str(data.get("severity") or "").strip().lower()
    if severity not in INSIGHT_SEVERITIES:
        logger.warning("Unknown insight severity, using medium", severity=data.get("severity"))
        severity = "medium"

    return InsightReply(
        analysis=analysis.strip(),
        root_causes=_string_list(data.get("rootCauses")),
        recommendations=_string_list(data.get("recommendations")),
        severity=severity,
    )


class InsightEmitter:
    """Packages rule context for the text generator and builds insights."""

    def __init__(self, generator: TextGenerator, *, max_tokens: int = 1000):
        self.generator = generator
        self.max_tokens = max_tokens

    def build_prompt(
        self,
        url: str,
        samples: Sequence[ProbeResult],
        trigger: str,
        expected_status: list[int] | None = None,
    ) -> str:
        return render_template(
            INSIGHT_TEMPLATE,
            url=url,
            trigger=trigger,
            expected_status=expected_status or [],
            checks=list(samples),
            checks_json=json.dumps([s.to_dict() for s in samples], indent=2),
        )

    async def emit(
        self,
        url: str,
        samples: Sequence[ProbeResult],
        trigger: str,
        *,
        expected_status: list[int] | None = None,
    ) -> Insight | None:
        """Ask the model about a rule trigger.

        Returns None when the model call or the reply parsing fails; those
        failures are logged and never raised.
        """
        prompt = self.build_prompt(url, samples, trigger, expected_status)
        try:
            reply_text = await self.generator.generate(prompt, max_tokens=self.max_tokens)
            reply = parse_insight_reply(reply_text)
        except GenerationError as e:
            logger.error("Insight generation failed", url=url, trigger=trigger, error=str(e))
            return None
        except InsightParseError as e:
            logger.error("Could not parse insight reply", url=url, trigger=trigger, error=str(e))
            return None
        except Exception as e:
            logger.error("Unexpected insight failure", url=url, trigger=trigger, error=str(e))
            return None

        insight = Insight(
            timestamp=time.time(),
            type="alert",
            severity=reply.severity,
            message=reply.analysis,
            data={
                "url": url,
                "trigger": trigger,
                "root_causes": reply.root_causes,
                "recommendations": reply.recommendations,
                "checks": list(samples),
            },
        )
        logger.info("AI insight generated", url=url, severity=insight.severity, analysis=reply.analysis)
        return insight
