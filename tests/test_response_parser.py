import pytest

from clinicai.config import PROVIDER_A, PROVIDER_B
from clinicai.errors import ParseError
from clinicai.provider_clients import get_provider_a_client
from clinicai.response_parser import (
    build_parser_prompt, domain_in_text, estimate_rank, extract_fenced_json,
    heuristic_visibility, load_json_object, parse_all, parse_provider_text,
    reconcile_with_text, validate_parsed,
)
from clinicai.scan_orchestrator import ScanOutcome
from clinicai.visibility_models import ParsedVisibility

RANKED_TEXT = (
    "Here are the top clinics:\n"
    "1. Alpha Dental - alphadental.com\n"
    "2. Beta Smiles - betasmiles.com\n"
    "3. Gamma Clinic - https://www.gammaclinic.com\n"
)


class TestJsonLoading:
    def test_bare_json(self):
        assert load_json_object('{"rank": 2}') == {"rank": 2}

    def test_fenced_json_block(self):
        content = 'Sure!\n```json\n{"domainPresent": true, "rank": 2}\n```\nDone.'

        assert load_json_object(content) == {"domainPresent": True, "rank": 2}

    def test_fence_without_language_tag(self):
        assert extract_fenced_json('```\n{"a": 1}\n```') == {"a": 1}

    @pytest.mark.parametrize("content", ["not json at all", "[1, 2, 3]", "```json\nnope\n```", ""])
    def test_unusable_content_raises_parse_error(self, content):
        with pytest.raises(ParseError):
            load_json_object(content)


class TestHeuristics:
    def test_domain_in_text_matches_any_variant(self):
        assert domain_in_text(RANKED_TEXT, "gammaclinic.com")
        assert domain_in_text(RANKED_TEXT, "https://www.gammaclinic.com/")
        assert not domain_in_text(RANKED_TEXT, "deltaclinic.com")

    @pytest.mark.parametrize("domain", ["https://", "www.", "/", "http://www./"])
    def test_domain_that_normalizes_to_nothing_never_matches(self, domain):
        assert not domain_in_text("Nothing about any clinic here", domain)
        assert not heuristic_visibility(RANKED_TEXT, domain, "bad json").domain_present

    def test_reconcile_ignores_empty_domain(self):
        parsed = ParsedVisibility(domain_present=False)

        assert reconcile_with_text(parsed, RANKED_TEXT, "https://").domain_present is False

    def test_estimate_rank_counts_markers_before_domain(self):
        assert estimate_rank(RANKED_TEXT, "gammaclinic.com") == 3
        assert estimate_rank(RANKED_TEXT, "alphadental.com") == 1

    def test_estimate_rank_without_markers_is_none(self):
        assert estimate_rank("Try gammaclinic.com", "gammaclinic.com") is None

    def test_estimate_rank_domain_at_start_is_none(self):
        assert estimate_rank("gammaclinic.com is first", "gammaclinic.com") is None

    def test_estimate_rank_is_capped_at_ten(self):
        text = " ".join(["1."] * 12) + " gammaclinic.com"

        assert estimate_rank(text, "gammaclinic.com") == 10

    def test_heuristic_visibility_with_scheme_in_domain(self):
        text = "Top picks: 1. Smile Co, 2. example.com for implants."

        parsed = heuristic_visibility(text, "https://example.com", "parser unavailable")

        assert parsed.domain_present is True
        assert parsed.rank == 2
        assert parsed.competitors == []
        assert parsed.trust_score == 0
        assert parsed.local_score == 0
        assert parsed.raw_analysis.startswith("Fallback analysis:")

    def test_heuristic_visibility_absent_domain(self):
        parsed = heuristic_visibility(RANKED_TEXT, "deltaclinic.com", "bad json")

        assert parsed.domain_present is False
        assert parsed.rank is None


class TestValidateParsed:
    def test_accepts_camel_case_keys(self):
        data = {
            "domainPresent": True, "rank": 2, "competitors": ["Alpha", "Beta"],
            "rawAnalysis": "found", "trustScore": 7, "localScore": 6,
        }

        parsed = validate_parsed(data, "{}")

        assert parsed == ParsedVisibility(
            domain_present=True, rank=2, competitors=["Alpha", "Beta"],
            raw_analysis="found", trust_score=7, local_score=6,
        )

    def test_accepts_snake_case_keys(self):
        parsed = validate_parsed({"domain_present": True, "rank": 1, "trust_score": 4}, "{}")

        assert parsed.domain_present is True
        assert parsed.trust_score == 4

    @pytest.mark.parametrize("rank", [0, 11, -1, 2.5, "first", True])
    def test_out_of_range_rank_becomes_none(self, rank):
        assert validate_parsed({"domainPresent": True, "rank": rank}, "{}").rank is None

    def test_string_rank_is_accepted(self):
        assert validate_parsed({"domainPresent": True, "rank": "4"}, "{}").rank == 4

    @pytest.mark.parametrize("raw, expected", [(12, 10), (-3, 0), (7.5, 8), ("6", 6), (None, 0), ("high", 0)])
    def test_scores_are_rounded_and_clamped(self, raw, expected):
        parsed = validate_parsed({"domainPresent": True, "trustScore": raw, "localScore": raw}, "{}")

        assert parsed.trust_score == expected
        assert parsed.local_score == expected

    def test_absent_domain_zeroes_rank_and_scores(self):
        parsed = validate_parsed(
            {"domainPresent": False, "rank": 3, "trustScore": 9, "localScore": 9}, "{}"
        )

        assert parsed.rank is None
        assert parsed.trust_score == 0
        assert parsed.local_score == 0

    def test_competitors_are_deduplicated_and_cleaned(self):
        data = {"competitors": ["Alpha", " Alpha ", "", {"name": "Beta"}, 42, "Gamma"]}

        assert validate_parsed(data, "{}").competitors == ["Alpha", "Beta", "Gamma"]

    def test_missing_raw_analysis_keeps_content(self):
        assert validate_parsed({"domainPresent": False}, '{"x": 1}').raw_analysis == '{"x": 1}'


class TestReconcile:
    def test_literal_mention_overrides_model(self):
        parsed = ParsedVisibility(domain_present=False, competitors=["Alpha Dental"])

        reconciled = reconcile_with_text(parsed, RANKED_TEXT, "betasmiles.com")

        assert reconciled.domain_present is True
        assert reconciled.rank == 2
        assert reconciled.competitors == ["Alpha Dental"]

    def test_present_result_is_unchanged(self):
        parsed = ParsedVisibility(domain_present=True, rank=1)

        assert reconcile_with_text(parsed, RANKED_TEXT, "betasmiles.com") is parsed


class TestParseProviderText:
    @pytest.mark.asyncio
    async def test_uses_parser_output(self, fake_providers, http_client, pipeline_config, parser_json):
        fake_providers.on("parser", parser_json(
            True, rank=2, competitors=["Alpha Dental", "Gamma Clinic"], trust_score=8, local_score=7
        ))
        client = get_provider_a_client("sk-a", pipeline_config, http_client)

        outcome = await parse_provider_text(
            RANKED_TEXT, "betasmiles.com", client, pipeline_config, PROVIDER_A
        )

        assert outcome.used_fallback is False
        assert outcome.parsed.rank == 2
        assert outcome.parsed.trust_score == 8
        assert outcome.parsed.competitors == ["Alpha Dental", "Gamma Clinic"]
        assert len(outcome.logs) == 1
        log = outcome.logs[0]
        assert log.role == "parser"
        assert log.error is None
        assert log.request_body["response_format"] == {"type": "json_object"}

        body = fake_providers.calls("parser")[0]["body"]
        assert body["model"] == "gpt-4o-mini"
        assert body["temperature"] == 0
        assert "betasmiles.com" in body["messages"][1]["content"]
        assert RANKED_TEXT in body["messages"][1]["content"]

    @pytest.mark.asyncio
    async def test_invalid_json_falls_back_and_keeps_response(
        self, fake_providers, http_client, pipeline_config
    ):
        fake_providers.on("parser", "I could not find anything useful")
        client = get_provider_a_client("sk-a", pipeline_config, http_client)

        outcome = await parse_provider_text(
            RANKED_TEXT, "gammaclinic.com", client, pipeline_config, PROVIDER_B
        )

        assert outcome.used_fallback is True
        assert outcome.parsed.domain_present is True
        assert outcome.parsed.rank == 3
        assert outcome.parsed.raw_analysis.startswith("Fallback analysis:")
        assert len(outcome.logs) == 1
        assert outcome.logs[0].error is not None
        assert outcome.logs[0].response_body.content == "I could not find anything useful"

    @pytest.mark.asyncio
    async def test_fenced_json_is_not_a_fallback(self, fake_providers, http_client, pipeline_config, parser_json):
        fake_providers.on("parser", "```json\n" + parser_json(True, rank=1) + "\n```")
        client = get_provider_a_client("sk-a", pipeline_config, http_client)

        outcome = await parse_provider_text(
            RANKED_TEXT, "alphadental.com", client, pipeline_config, PROVIDER_A
        )

        assert outcome.used_fallback is False
        assert outcome.parsed.rank == 1

    @pytest.mark.asyncio
    async def test_parser_call_failure_falls_back(self, fake_providers, http_client, pipeline_config):
        fake_providers.on("parser", fake_providers.api_error(401, "bad key"))
        client = get_provider_a_client("sk-a", pipeline_config, http_client)

        outcome = await parse_provider_text(
            RANKED_TEXT, "deltaclinic.com", client, pipeline_config, PROVIDER_A
        )

        assert outcome.used_fallback is True
        assert outcome.parsed.domain_present is False
        assert len(outcome.logs) == 1
        assert outcome.logs[0].response_body is None
        assert "bad key" in outcome.logs[0].error
        assert len(fake_providers.calls("parser")) == 1

    @pytest.mark.asyncio
    async def test_model_missing_literal_mention_is_corrected(
        self, fake_providers, http_client, pipeline_config, parser_json
    ):
        fake_providers.on("parser", parser_json(False, trust_score=5))
        client = get_provider_a_client("sk-a", pipeline_config, http_client)

        outcome = await parse_provider_text(
            RANKED_TEXT, "www.betasmiles.com", client, pipeline_config, PROVIDER_A
        )

        assert outcome.parsed.domain_present is True
        assert outcome.parsed.rank == 2


class TestParseAll:
    @pytest.mark.asyncio
    async def test_parses_only_providers_with_text(
        self, fake_providers, http_client, pipeline_config, parser_json
    ):
        fake_providers.on("parser", parser_json(True, rank=1))
        client = get_provider_a_client("sk-a", pipeline_config, http_client)
        scan = ScanOutcome(provider_a_text=RANKED_TEXT, provider_b_error=RuntimeError("down"))

        outcomes = await parse_all(scan, "alphadental.com", client, pipeline_config)

        assert list(outcomes) == [PROVIDER_A]
        assert len(fake_providers.calls("parser")) == 1

    @pytest.mark.asyncio
    async def test_each_provider_text_is_parsed_separately(
        self, fake_providers, http_client, pipeline_config, parser_json
    ):
        def reply(body):
            prompt = body["messages"][1]["content"]
            if "ANSWER-B" in prompt:
                return parser_json(True, rank=4)
            return parser_json(False)

        fake_providers.on("parser", reply)
        client = get_provider_a_client("sk-a", pipeline_config, http_client)
        scan = ScanOutcome(provider_a_text="ANSWER-A nothing here", provider_b_text="ANSWER-B 1. x 2. y")

        outcomes = await parse_all(scan, "clinic.com", client, pipeline_config)

        assert outcomes[PROVIDER_A].parsed.domain_present is False
        assert outcomes[PROVIDER_B].parsed.rank == 4
        assert len(fake_providers.calls("parser")) == 2


class TestParserPrompt:
    def test_prompt_names_domain_and_fields(self):
        prompt = build_parser_prompt("answer text", "clinic.com")

        assert '"clinic.com"' in prompt
        assert "answer text" in prompt
        for field_name in ("domainPresent", "rank", "competitors", "rawAnalysis", "trustScore", "localScore"):
            assert field_name in prompt
        assert "JSON" in prompt
