"""
Summarization and contradiction analysis.

The LLM is used for summarization only, over results already collected from
legal public sources. Replies are parsed from a fixed line format and every
score is converted to the 0.0-1.0 scale here.
"""
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import List, Optional, Sequence

from openai import AsyncOpenAI

from config.settings import Settings
from blackgpt.data.base_connector import CorrelationSource
from blackgpt.utils.constants import CONTRADICTION_THRESHOLD
from blackgpt.utils.logging import get_logger

logger = get_logger(__name__)

SUMMARY_SYSTEM_PROMPT = (
    "You are an expert analyst summarizing market signals from legal public sources. "
    "Provide concise, factual summaries with confidence scores."
)

CONTRADICTION_SYSTEM_PROMPT = (
    "You are a critical analyst looking for contradictions and counter-evidence in market signals."
)

@dataclass
class SummaryResult:
    gist: str
    top_signals: List[str] = field(default_factory=list)
    confidence: Optional[float] = None
    model_used: Optional[str] = None
    tokens_used: Optional[int] = None

@dataclass
class Contradiction:
    """Contradiction assessment between a signal and correlated evidence."""
    flag: bool = False
    confidence: float = 0.0
    note: str = ""

    @property
    def requires_review(self) -> bool:
        return self.confidence > CONTRADICTION_THRESHOLD

    def to_dict(self) -> dict:
        return {
            'flag': self.flag,
            'confidence': self.confidence,
            'note': self.note,
            'requires_review': self.requires_review,
        }

class Summarizer(ABC):
    """Injectable summarization capability."""

    @abstractmethod
    async def summarize(self, sources: Sequence[CorrelationSource], original_gist: str) -> SummaryResult:
        pass

    @abstractmethod
    async def detect_contradictions(self, gist: str, sources: Sequence[CorrelationSource]) -> Contradiction:
        pass

def _describe_sources(sources: Sequence[CorrelationSource]) -> str:
    lines = []
    index = 1
    for source in sources:
        for item in source.results:
            lines.append(f"{index}. [{source.source_name}] {item.title} {item.content} ({item.url or 'n/a'})")
            index += 1
    return '\n'.join(lines) or 'No public sources returned results.'

def _percent_to_unit(text: Optional[str], default: float) -> float:
    if text is None:
        return default
    return max(0.0, min(1.0, int(text) / 100.0))

def parse_summary_response(response: str) -> SummaryResult:
    """Parse a SUMMARY/CONFIDENCE/SIGNALS reply."""
    summary_match = re.search(r'SUMMARY:\s*(.+?)(?=CONFIDENCE:|$)', response, re.DOTALL)
    confidence_match = re.search(r'CONFIDENCE:\s*(\d+)', response)
    signals_match = re.search(r'SIGNALS:\s*(.+?)$', response, re.DOTALL)

    gist = summary_match.group(1).strip() if summary_match else response[:300].strip()
    if signals_match:
        top_signals = [s.strip() for s in signals_match.group(1).split(',') if s.strip()]
    else:
        top_signals = []

    return SummaryResult(
        gist=gist,
        top_signals=top_signals,
        confidence=_percent_to_unit(confidence_match.group(1) if confidence_match else None, 0.5),
    )

def parse_contradiction_response(response: str) -> Contradiction:
    """Parse a CONTRADICTION: YES|NO | CONFIDENCE: NN | EVIDENCE: ... reply."""
    contradiction_match = re.search(r'CONTRADICTION:\s*(YES|NO)', response, re.IGNORECASE)
    confidence_match = re.search(r'CONFIDENCE:\s*(\d+)', response)
    evidence_match = re.search(r'EVIDENCE:\s*(.+?)$', response, re.DOTALL)

    return Contradiction(
        flag=bool(contradiction_match) and contradiction_match.group(1).upper() == 'YES',
        confidence=_percent_to_unit(confidence_match.group(1) if confidence_match else None, 0.0),
        note=evidence_match.group(1).strip() if evidence_match else 'No contradictions detected',
    )

class OpenAISummarizer(Summarizer):
    """Summarizer backed by OpenAI chat completions."""

    def __init__(self, api_key: str, model: str = "gpt-4", client: Optional[AsyncOpenAI] = None):
        self.model = model
        self.client = client or AsyncOpenAI(api_key=api_key)

    async def summarize(self, sources: Sequence[CorrelationSource], original_gist: str) -> SummaryResult:
        prompt = (
            "Analyze the following market signal and correlation sources from legal public APIs.\n\n"
            f"Original Signal: {original_gist}\n\n"
            f"Public Sources Found:\n{_describe_sources(sources)}\n\n"
            "Provide:\n"
            "1. A concise summary (max 120 words) confirming or adjusting the original signal\n"
            "2. Confidence score (0-100) based on source quality and consensus\n"
            "3. Top 3 key signals/patterns that informed your analysis\n\n"
            "Format:\n"
            "SUMMARY: [your summary]\n"
            "CONFIDENCE: [0-100]\n"
            "SIGNALS: [signal1], [signal2], [signal3]"
        )

        logger.info("Summarization started", sources=len(sources), model=self.model)

        completion = await self.client.chat.completions.create(
            model=self.model,
            messages=[
                {'role': 'system', 'content': SUMMARY_SYSTEM_PROMPT},
                {'role': 'user', 'content': prompt},
            ],
            temperature=0.3,
            max_tokens=300,
        )

        result = parse_summary_response(completion.choices[0].message.content or '')
        result.model_used = completion.model
        result.tokens_used = completion.usage.total_tokens if completion.usage else None

        logger.info("Summarization complete", tokens_used=result.tokens_used)
        return result

    async def detect_contradictions(self, gist: str, sources: Sequence[CorrelationSource]) -> Contradiction:
        prompt = (
            "Analyze the following market signal summary and sources. "
            "Find any contradictory evidence or conflicting information.\n\n"
            f"Summary: {gist}\n\n"
            f"Sources:\n{_describe_sources(sources)}\n\n"
            "Provide:\n"
            "1. Whether contradictions exist (YES/NO)\n"
            "2. Confidence level (0-100)\n"
            "3. Brief explanation of contradictions found\n\n"
            "Format: CONTRADICTION: YES/NO | CONFIDENCE: XX | EVIDENCE: explanation"
        )

        completion = await self.client.chat.completions.create(
            model=self.model,
            messages=[
                {'role': 'system', 'content': CONTRADICTION_SYSTEM_PROMPT},
                {'role': 'user', 'content': prompt},
            ],
            temperature=0.5,
            max_tokens=200,
        )

        return parse_contradiction_response(completion.choices[0].message.content or '')

def build_summarizer(settings: Settings) -> Optional[Summarizer]:
    """OpenAI summarizer when a key is configured outside demo mode, else None."""
    if settings.DEMO_MODE or not settings.OPENAI_API_KEY:
        logger.info("Summarizer disabled (demo mode or missing credentials)")
        return None
    return OpenAISummarizer(api_key=settings.OPENAI_API_KEY, model=settings.OPENAI_MODEL)
