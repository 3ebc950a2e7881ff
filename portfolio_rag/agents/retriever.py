"""
Retrieval orchestration: analysis, query shaping, search and context formatting.
"""

import re
from dataclasses import dataclass, field
from typing import List, Optional

from .relevance import CONTEXT_KEYWORDS, TECH_KEYWORDS
from ..core.errors import StoreUnavailable
from ..core.schema import IndexableTypesConfig, RelevanceDecision
from ..util.logging import logger
from ..vector.types import SearchResult

SKIPPED = "skipped"
EMPTY = "empty"
FOUND = "found"
FAILED = "failed"

_CONTACT_TERMS = ("contact", "téléphone", "telephone", "email", "phone")
_LIST_ALL = re.compile(r"\b(tout|tous|toutes|liste|lister|all|every|list)\b")

# metadata key -> label shown in the context block, in display order
DETAIL_LABELS = [
    ("github_link", "GitHub"),
    ("link_demo", "Demo"),
    ("link_npm", "NPM"),
    ("email", "Email"),
    ("phoneNumber", "Phone"),
    ("website", "Website"),
    ("linkedin", "LinkedIn"),
    ("github", "GitHub"),
    ("codings_names", "Technologies"),
    ("coding_skills_names", "Skills"),
    ("languages_names", "Languages"),
    ("category", "Category"),
    ("ranking", "Ranking"),
]


@dataclass
class RetrievalResult:
    """Outcome of one retrieval pass. `context` is None unless something should reach the model."""
    status: str  # skipped | empty | found | failed
    context: Optional[str]
    decision: RelevanceDecision
    search_query: str = ""
    k: int = 0
    results: List[SearchResult] = field(default_factory=list)


_KNOWN = set(CONTEXT_KEYWORDS) | set(TECH_KEYWORDS)


def _normalized(keyword: str) -> str:
    """Lower-case and drop a plural "s" when the singular is a known keyword."""
    lowered = keyword.lower().strip()
    return lowered[:-1] if lowered.endswith("s") and lowered[:-1] in _KNOWN else lowered


def build_search_query(keywords: List[str]) -> str:
    """
    First contextual keyword plus every technical keyword; either category
    alone when the other is absent; otherwise all keywords.
    """
    if not keywords:
        return ""

    contextual = [k for k in keywords if _normalized(k) in CONTEXT_KEYWORDS]
    technical = [k for k in keywords if _normalized(k) in TECH_KEYWORDS]

    if contextual and technical:
        return " ".join([contextual[0]] + technical)
    if technical:
        return " ".join(technical)
    if contextual:
        return contextual[0]
    return " ".join(keywords)


def choose_result_count(utterance: str, keywords: List[str], min_k: int = 2, max_k: int = 8) -> int:
    """Few results for contact questions, many for "list everything", else by keyword count."""
    lowered = utterance.lower()

    if any(term in lowered for term in _CONTACT_TERMS):
        k = 2
    elif _LIST_ALL.search(lowered):
        k = 8
    elif len(keywords) > 3:
        k = 6
    elif len(keywords) > 1:
        k = 4
    else:
        k = 5

    return max(min_k, min(max_k, k))


def format_details(metadata: dict) -> List[str]:
    details = []
    for key, label in DETAIL_LABELS:
        value = metadata.get(key)
        if value not in (None, ""):
            details.append(f"{label}: {value}")
    return details


def format_context(utterance: str, search_query: str, decision: RelevanceDecision,
                   results: List[SearchResult], types_config: IndexableTypesConfig) -> str:
    """Numbered context blocks, one per hit, behind a header with the analysis."""
    lines = [
        f'=== Portfolio search for "{utterance}" ===',
        f'Search query: "{search_query}"',
        f"Analysis confidence: {decision.confidence * 100:.1f}% - {decision.reasoning}",
        "",
    ]

    for index, result in enumerate(results, start=1):
        label = types_config.label_for(result.source_type)
        lines.append(f"{index}. {label} (similarity: {result.similarity:.3f})")
        for text_line in result.text.strip().splitlines():
            lines.append(f"   {text_line}")

        details = format_details(result.metadata)
        if details:
            lines.append(f"   Details: {', '.join(details)}")
        lines.append("")

    plural = "s" if len(results) > 1 else ""
    lines.append(f"=== {len(results)} item{plural} found ===")
    return "\n".join(lines)


def format_nothing_found(utterance: str, search_query: str) -> str:
    return (
        f'No portfolio information found for "{utterance}" (searched with "{search_query}"). '
        "Answer from general knowledge and say the details are not at hand."
    )


class RetrievalOrchestrator:
    """Runs the read path. Failures degrade to no context, never to an error."""

    def __init__(self, analyzer, embedding_provider, vector_store, types_config: IndexableTypesConfig,
                 min_k: int = 2, max_k: int = 8):
        self.analyzer = analyzer
        self.embedding_provider = embedding_provider
        self.vector_store = vector_store
        self.types_config = types_config
        self.min_k = min_k
        self.max_k = max_k

    def retrieve(self, utterance: str) -> RetrievalResult:
        decision = self.analyzer.analyze(utterance)

        if not decision.should_retrieve:
            logger.log_retrieval(SKIPPED, details={"reasoning": decision.reasoning})
            return RetrievalResult(status=SKIPPED, context=None, decision=decision)

        search_query = build_search_query(decision.keywords) or utterance
        k = choose_result_count(utterance, decision.keywords, self.min_k, self.max_k)

        try:
            embedding = self.embedding_provider.embed_text(search_query)
            results = self.vector_store.query(embedding, k)
        except StoreUnavailable as e:
            logger.log_retrieval(FAILED, search_query, k, details={"error": str(e)})
            return RetrievalResult(status=FAILED, context=None, decision=decision, search_query=search_query, k=k)
        except Exception as e:
            logger.error(f"Unexpected {type(e).__name__} during retrieval: {e}")
            logger.log_retrieval(FAILED, search_query, k, details={"error": str(e)})
            return RetrievalResult(status=FAILED, context=None, decision=decision, search_query=search_query, k=k)

        if not results:
            logger.log_retrieval(EMPTY, search_query, k)
            return RetrievalResult(
                status=EMPTY,
                context=format_nothing_found(utterance, search_query),
                decision=decision,
                search_query=search_query,
                k=k,
            )

        logger.log_retrieval(FOUND, search_query, k, len(results))
        return RetrievalResult(
            status=FOUND,
            context=format_context(utterance, search_query, decision, results, self.types_config),
            decision=decision,
            search_query=search_query,
            k=k,
            results=results,
        )

    def retrieve_context(self, utterance: str) -> Optional[str]:
        """Context string for the conversational model, or None."""
        return self.retrieve(utterance).context
