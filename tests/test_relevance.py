"""
Tests for relevance analysis: model path, fast path and keyword fallback.
"""

import pytest
from unittest.mock import MagicMock

import httpx
import ollama

from portfolio_rag.agents.relevance import (
    FALLBACK_CONFIDENCE, RelevanceAnalyzer, extract_json, extract_keywords, is_greeting, parse_decision,
)
from portfolio_rag.core.errors import AnalysisParseError


def _analyzer(raw_response=None, generate_error=None, fast_path=False, reachable=True):
    client = MagicMock()
    if generate_error is not None:
        client.generate.side_effect = generate_error
    else:
        client.generate.return_value = {"response": raw_response}

    probe_client = MagicMock()
    if not reachable:
        probe_client.list.side_effect = httpx.ConnectError("refused")

    return RelevanceAnalyzer(fast_path=fast_path, client=client, probe_client=probe_client)


class TestFallback:

    def test_portfolio_question_retrieves(self, offline_analyzer):
        decision = offline_analyzer.analyze("Quels sont tes projets React ?")

        assert decision.should_retrieve is True
        assert "projet" in decision.keywords
        assert "react" in decision.keywords
        assert decision.confidence == FALLBACK_CONFIDENCE
        assert decision.source == "fallback"

    def test_off_topic_question_skips(self, offline_analyzer):
        decision = offline_analyzer.analyze("Quel temps fait-il ?")

        assert decision.should_retrieve is False
        assert decision.keywords == []
        assert decision.confidence == FALLBACK_CONFIDENCE

    def test_short_keywords_need_word_boundaries(self):
        assert "cv" in extract_keywords("Tu peux m'envoyer ton CV ?")
        assert "git" not in extract_keywords("J'ai lu un digit")
        assert "api" not in extract_keywords("Rapide")

    @pytest.mark.parametrize("error", [
        httpx.ReadTimeout("timed out"),
        ollama.ResponseError("model not found", 404),
        ConnectionError("refused"),
    ])
    def test_model_errors_fall_back(self, error):
        decision = _analyzer(generate_error=error).analyze("Parle-moi de ton expérience")

        assert decision.source == "fallback"
        assert decision.should_retrieve is True
        assert "expérience" in decision.keywords

    def test_unparseable_answer_falls_back(self):
        decision = _analyzer("I think you should search.").analyze("Quels sont tes projets ?")
        assert decision.source == "fallback"

    def test_disabled_model_uses_fallback_without_calling_it(self):
        analyzer = _analyzer('{"shouldUseRAG": false}')
        analyzer.enabled = False

        decision = analyzer.analyze("Quels sont tes projets ?")

        assert decision.source == "fallback"
        analyzer.client.generate.assert_not_called()


class TestModelPath:

    def test_model_decision_used(self):
        analyzer = _analyzer('{"shouldUseRAG": true, "confidence": 0.85, "keywords": ["projects", "Angular"]}')

        decision = analyzer.analyze("What did you build with Angular?")

        assert decision.should_retrieve is True
        assert decision.confidence == 0.85
        assert decision.keywords == ["projects", "Angular"]
        assert decision.source == "llm"

    def test_request_shape(self):
        analyzer = _analyzer('{"shouldUseRAG": false, "confidence": 0.9, "keywords": []}')
        analyzer.analyze("Weather?")

        _, kwargs = analyzer.client.generate.call_args
        assert kwargs["stream"] is False
        assert kwargs["options"]["temperature"] == 0
        assert kwargs["options"]["num_ctx"] == 512
        assert '"Weather?"' in kwargs["prompt"]

    def test_unreachable_probe_skips_model(self):
        analyzer = _analyzer('{"shouldUseRAG": true}', reachable=False)

        analyzer.analyze("Quels sont tes projets ?")
        analyzer.analyze("Et ton parcours ?")

        analyzer.client.generate.assert_not_called()
        # Probe result is cached within the window
        assert analyzer.probe_client.list.call_count == 1


class TestFastPath:

    @pytest.mark.parametrize("utterance", ["Bonjour", "hello !", "test", "Salut toi", "ça va"])
    def test_greetings_skip(self, utterance):
        decision = _analyzer(fast_path=True).analyze(utterance)

        assert decision.should_retrieve is False
        assert decision.confidence == 1.0
        assert decision.source == "fast_path"

    def test_keywords_retrieve_without_model(self):
        analyzer = _analyzer(fast_path=True)
        decision = analyzer.analyze("Tu as de l'expérience avec Docker ?")

        assert decision.should_retrieve is True
        assert decision.keywords == ["expérience", "docker"]
        analyzer.client.generate.assert_not_called()

    def test_ambiguous_question_goes_to_model(self):
        analyzer = _analyzer('{"shouldUseRAG": false, "confidence": 0.6, "keywords": []}', fast_path=True)
        decision = analyzer.analyze("Quel temps fait-il ?")

        assert decision.source == "llm"
        analyzer.client.generate.assert_called_once()


class TestJsonExtraction:

    def test_surrounding_prose(self):
        raw = 'Sure! Here it is: {"shouldUseRAG": true, "keywords": ["a"]} Hope this helps.'
        assert extract_json(raw) == {"shouldUseRAG": True, "keywords": ["a"]}

    def test_think_block_stripped(self):
        raw = '<think>maybe {"shouldUseRAG": false}</think>\n{"shouldUseRAG": true, "confidence": 0.8}'
        assert extract_json(raw)["shouldUseRAG"] is True

    def test_braces_inside_strings(self):
        raw = '{"shouldUseRAG": true, "keywords": ["{weird}"]} trailing }'
        assert extract_json(raw)["keywords"] == ["{weird}"]

    def test_first_balanced_object_wins(self):
        raw = '{"shouldUseRAG": true} {"shouldUseRAG": false}'
        assert extract_json(raw) == {"shouldUseRAG": True}

    def test_no_json(self):
        with pytest.raises(AnalysisParseError):
            extract_json("no json here")

    def test_confidence_clamped_and_defaulted(self):
        assert parse_decision('{"shouldUseRAG": true, "confidence": 3}').confidence == 1.0
        assert parse_decision('{"shouldUseRAG": true, "confidence": "high"}').confidence == 0.9
        assert parse_decision('{"shouldUseRAG": true}').confidence == 0.9

    def test_missing_decision_field(self):
        with pytest.raises(AnalysisParseError):
            parse_decision('{"confidence": 0.9}')

    def test_array_payload(self):
        decision = parse_decision('[{"shouldUseRAG": "true", "keywords": "not a list"}]')
        assert decision.should_retrieve is True
        assert decision.keywords == []


def test_is_greeting():
    assert is_greeting("Hi there")
    assert not is_greeting("Hiking projects?")
