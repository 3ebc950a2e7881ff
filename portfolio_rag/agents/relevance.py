"""
Relevance analysis: does a visitor's question need portfolio context?

The local model decides when it is reachable. Otherwise a keyword
heuristic takes over, so `analyze` always returns a decision.
"""

import json
import re
import time
from typing import Any, List, Optional

import httpx
import ollama

from .prompts import build_analysis_prompt
from ..core.errors import AnalysisParseError, ModelUnavailable
from ..core.schema import RelevanceDecision
from ..util.logging import logger

FALLBACK_CONFIDENCE = 0.7
DEFAULT_MODEL_CONFIDENCE = 0.9
FAST_PATH_CONFIDENCE = 1.0

# Keywords of this length or shorter must match a whole word ("cv", "git", "tes")
SHORT_KEYWORD_MAX_LEN = 3

GREETINGS = ['test', 'bonjour', 'salut', 'hello', 'coucou', 'hola', 'hi', 'ça va', 'ca va']

TECH_KEYWORDS = [
    'react', 'vue', 'angular', 'php', 'python', 'javascript', 'typescript', 'node', 'nodejs',
    'html', 'css', 'sass', 'scss', 'tailwind', 'bootstrap', 'sql', 'mysql', 'postgres', 'mongodb',
    'docker', 'aws', 'cloud', 'api', 'rest', 'graphql', 'git'
]

CONTEXT_KEYWORDS = [
    'projet', 'project', 'réalisations', 'realisations', 'démo', 'demo',
    'compétence', 'skill', 'techno', 'stack', 'maîtrise', 'niveau',
    'expérience', 'experience', 'parcours', 'curriculum', 'cv', 'background',
    'formation', 'education', 'diplôme', 'étude', 'école',
    'contact', 'email', 'mail', 'téléphone', 'tel', 'phone', 'linkedin', 'github',
    'mission', 'travail', 'poste', 'stage', 'alternance',
    'qui es-tu', 'présente-toi', 'ton nom', "t'appelles",
    'âge', 'age', 'naissance', 'birth', 'né en', 'years old'
]

# Broader net used only to decide whether a question is about the portfolio
DOMAIN_KEYWORDS = TECH_KEYWORDS + CONTEXT_KEYWORDS + [
    'projects', 'réalisation', 'portfolio', 'développé', 'développement', 'créé', 'construit',
    'built', 'created', 'compétences', 'skills', 'technologie', 'technologies', 'maîtrises',
    'connaissances', 'language', 'langages', 'postgresql', 'firebase', 'strapi', 'wordpress',
    'laravel', 'expériences', 'experiences', 'job', 'formations', 'études', 'diplômes',
    'université', 'cursus', 'qui êtes-vous', 'présentez-vous', 'présente', 'about', 'à propos',
    'profil', 'profile', 'nom', 'prénom', 'contacter', 'joindre', 'coordonnées', 'site', 'website',
    'web', 'mobile', 'frontend', 'backend', 'fullstack', 'full-stack', 'développeur', 'developer',
    'programmeur', 'programmer', 'toi', 'vous', 'ton', 'votre', 'tes', 'vos'
]

_THINK_BLOCK = re.compile(r"<think>.*?</think>", re.DOTALL | re.IGNORECASE)


def keyword_in(keyword: str, lowered: str) -> bool:
    """Substring match for long keywords, whole-word match for short ones."""
    if len(keyword) > SHORT_KEYWORD_MAX_LEN:
        return keyword in lowered
    return re.search(rf"\b{re.escape(keyword)}\b", lowered) is not None


def extract_keywords(utterance: str) -> List[str]:
    """Curated contextual then technical keywords found in the utterance, deduplicated."""
    lowered = utterance.lower()
    found = []
    for keyword in CONTEXT_KEYWORDS + TECH_KEYWORDS:
        if keyword not in found and keyword_in(keyword, lowered):
            found.append(keyword)
    return found


def is_greeting(utterance: str) -> bool:
    lowered = utterance.lower().strip().rstrip("!?. ")
    return any(
        lowered == g or lowered.startswith(g + " ") or lowered.endswith(" " + g)
        for g in GREETINGS
    )


def mentions_domain(utterance: str) -> bool:
    lowered = utterance.lower()
    return any(keyword_in(keyword, lowered) for keyword in DOMAIN_KEYWORDS)


def extract_json(raw: str) -> Any:
    """
    Return the first balanced JSON object or array embedded in raw text.

    Raises:
        AnalysisParseError: if no balanced, parseable JSON value is found
    """
    text = _THINK_BLOCK.sub("", raw or "")

    for start, char in enumerate(text):
        if char not in "{[":
            continue

        depth = 0
        in_string = False
        escaped = False
        for end in range(start, len(text)):
            c = text[end]
            if in_string:
                if escaped:
                    escaped = False
                elif c == "\\":
                    escaped = True
                elif c == '"':
                    in_string = False
                continue

            if c == '"':
                in_string = True
            elif c in "{[":
                depth += 1
            elif c in "}]":
                depth -= 1
                if depth == 0:
                    try:
                        return json.loads(text[start:end + 1])
                    except json.JSONDecodeError:
                        break

    raise AnalysisParseError("No JSON found in model response", raw=raw)


def _as_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ("true", "yes", "1")
    return bool(value)


def _as_confidence(value: Any) -> float:
    try:
        confidence = float(value)
    except (TypeError, ValueError):
        return DEFAULT_MODEL_CONFIDENCE
    if confidence != confidence:  # NaN
        return DEFAULT_MODEL_CONFIDENCE
    return max(0.0, min(1.0, confidence))


def parse_decision(raw: str) -> RelevanceDecision:
    """Turn the model's raw answer into a decision."""
    payload = extract_json(raw)
    if isinstance(payload, list):
        payload = next((item for item in payload if isinstance(item, dict)), None)
    if not isinstance(payload, dict) or "shouldUseRAG" not in payload:
        raise AnalysisParseError("Model response has no shouldUseRAG field", raw=raw)

    keywords = payload.get("keywords")
    if not isinstance(keywords, list):
        keywords = []

    return RelevanceDecision(
        should_retrieve=_as_bool(payload["shouldUseRAG"]),
        confidence=_as_confidence(payload.get("confidence", DEFAULT_MODEL_CONFIDENCE)),
        keywords=[str(k).strip() for k in keywords if str(k).strip()],
        reasoning=str(payload.get("reasoning") or "Model analysis"),
        source="llm",
    )


def fallback_decision(utterance: str, reason: str) -> RelevanceDecision:
    """Deterministic keyword heuristic used whenever the model cannot answer."""
    should_retrieve = mentions_domain(utterance)
    return RelevanceDecision(
        should_retrieve=should_retrieve,
        confidence=FALLBACK_CONFIDENCE,
        keywords=extract_keywords(utterance) if should_retrieve else [],
        reasoning=f"Fallback analysis ({reason[:80]})",
        source="fallback",
    )


ANALYSIS_ERRORS = (
    ollama.ResponseError, httpx.HTTPError, ConnectionError, ModelUnavailable,
    AnalysisParseError, KeyError, TypeError, ValueError,
)


class RelevanceAnalyzer:
    """Decides per utterance whether retrieval is warranted."""

    def __init__(self, host: str = "http://localhost:11434", model_name: str = "qwen2.5:1.5b",
                 timeout: float = 8.0, num_ctx: int = 512, owner_name: str = "the site owner",
                 enabled: bool = True, fast_path: bool = True,
                 probe_timeout: float = 1.0, probe_cache_sec: float = 30.0,
                 client=None, probe_client=None):
        self.host = host
        self.model_name = model_name
        self.timeout = timeout
        self.num_ctx = num_ctx
        self.owner_name = owner_name
        self.enabled = enabled
        self.fast_path = fast_path
        self.probe_timeout = probe_timeout
        self.probe_cache_sec = probe_cache_sec
        self._client = client
        self._probe_client = probe_client
        self._probe_result: Optional[bool] = None
        self._probe_checked_at = 0.0

    @property
    def client(self):
        if self._client is None:
            self._client = ollama.Client(host=self.host, timeout=self.timeout)
        return self._client

    @property
    def probe_client(self):
        if self._probe_client is None:
            self._probe_client = ollama.Client(host=self.host, timeout=self.probe_timeout)
        return self._probe_client

    def is_model_reachable(self) -> bool:
        """Quick connectivity probe, cached for probe_cache_sec."""
        now = time.monotonic()
        if self._probe_result is not None and now - self._probe_checked_at < self.probe_cache_sec:
            return self._probe_result

        try:
            self.probe_client.list()
            reachable = True
        except (ollama.ResponseError, httpx.HTTPError, ConnectionError) as e:
            logger.debug(f"Analysis model probe failed: {e}")
            reachable = False

        self._probe_result = reachable
        self._probe_checked_at = now
        return reachable

    def _fast_path(self, utterance: str) -> Optional[RelevanceDecision]:
        if is_greeting(utterance):
            return RelevanceDecision(False, FAST_PATH_CONFIDENCE, [], "Fast path: greeting or test", "fast_path")

        keywords = extract_keywords(utterance)
        if keywords:
            return RelevanceDecision(
                True, FAST_PATH_CONFIDENCE, keywords,
                f"Fast path: found {', '.join(keywords)}", "fast_path"
            )
        return None

    def _ask_model(self, utterance: str) -> RelevanceDecision:
        try:
            response = self.client.generate(
                model=self.model_name,
                prompt=build_analysis_prompt(utterance, self.owner_name),
                stream=False,
                options={
                    "temperature": 0,
                    "num_ctx": self.num_ctx,
                    "top_p": 0.1,
                    "top_k": 10,
                },
            )
        except (ollama.ResponseError, httpx.HTTPError, ConnectionError) as e:
            raise ModelUnavailable("analyze", e)

        return parse_decision(response["response"])

    def analyze(self, utterance: str) -> RelevanceDecision:
        """Return a relevance decision. Never raises."""
        decision = None

        if self.fast_path:
            decision = self._fast_path(utterance)

        if decision is None and not self.enabled:
            decision = fallback_decision(utterance, "analysis model disabled")

        if decision is None and not self.is_model_reachable():
            decision = fallback_decision(utterance, "analysis model unreachable")

        if decision is None:
            try:
                decision = self._ask_model(utterance)
            except ANALYSIS_ERRORS as e:
                if isinstance(e, ModelUnavailable):
                    # Don't hit a dead model again until the probe window expires
                    self._probe_result = False
                    self._probe_checked_at = time.monotonic()
                decision = fallback_decision(utterance, str(e) or type(e).__name__)

        logger.log_analysis(decision.source, decision.should_retrieve, decision.confidence,
                            decision.keywords, decision.reasoning)
        return decision
