"""Tests for the Layer 1 evidence schemas."""

import dataclasses

import pytest

from injury_src.rules.schemas import (
    ALLOWED_INJURIES,
    AllowedInjury,
    Certainty,
    EvidenceMetadata,
    EvidenceParseError,
    FinalInjury,
    InjuryMention,
    Layer1Evidence,
    NoInjuryStatement,
    TemporalRelation,
    is_valid_allowed_injury,
)


def mention_dict(**overrides) -> dict:
    data = {
        "text": "3cm skin tear on right forearm",
        "injury_candidate": "skin tear",
        "body_site": "right forearm",
        "is_negated": False,
        "negation_text": None,
        "temporal_relation_to_fall": "post_fall",
        "certainty": "explicit",
        "start_char": 0,
        "end_char": 30,
    }
    data.update(overrides)
    return data


class TestEnums:
    """Test enum definitions."""

    def test_vocabulary(self):
        assert len(ALLOWED_INJURIES) == 24
        assert "skin tear" in ALLOWED_INJURIES
        assert "broken skin" in ALLOWED_INJURIES
        assert AllowedInjury.SKIN_TEAR.value == "skin tear"

    def test_is_valid_allowed_injury(self):
        assert is_valid_allowed_injury("fracture") is True
        assert is_valid_allowed_injury("Fracture") is False
        assert is_valid_allowed_injury("fever") is False

    def test_resolve(self):
        assert AllowedInjury.resolve(AllowedInjury.CUT) == AllowedInjury.CUT
        assert AllowedInjury.resolve("cut") == AllowedInjury.CUT
        assert AllowedInjury.resolve(None) is None
        assert AllowedInjury.resolve("CUT") is None
        assert AllowedInjury.resolve("CUT", exact=False) == AllowedInjury.CUT
        assert AllowedInjury.resolve("broken\nskin", exact=False) == AllowedInjury.BROKEN_SKIN

    def test_temporal_and_certainty_values(self):
        assert [t.value for t in TemporalRelation] == ["post_fall", "during_fall", "pre_fall", "unknown"]
        assert [c.value for c in Certainty] == ["explicit", "implied", "unclear"]


class TestInjuryMention:
    """Tests for InjuryMention parsing."""

    def test_from_dict(self):
        mention = InjuryMention.from_dict(mention_dict())

        assert mention.injury_candidate == AllowedInjury.SKIN_TEAR
        assert mention.temporal_relation_to_fall == TemporalRelation.POST_FALL
        assert mention.certainty == Certainty.EXPLICIT
        assert mention.is_explicit is True
        assert mention.to_dict() == mention_dict()

    def test_out_of_vocabulary_kept_as_string(self):
        mention = InjuryMention.from_dict(mention_dict(injury_candidate="fall"))

        assert mention.injury_candidate == "fall"
        assert mention.to_dict()["injury_candidate"] == "fall"

    def test_unknown_enums_coerced_with_warning(self):
        warnings = []
        mention = InjuryMention.from_dict(
            mention_dict(temporal_relation_to_fall="after", certainty="high"),
            warnings,
        )

        assert mention.temporal_relation_to_fall == TemporalRelation.UNKNOWN
        assert mention.certainty == Certainty.UNCLEAR
        assert len(warnings) == 2

    def test_missing_optional_fields_default(self):
        mention = InjuryMention.from_dict({
            "text": "bruise",
            "injury_candidate": "bruise",
            "start_char": 4,
            "end_char": 10,
        })

        assert mention.body_site is None
        assert mention.is_negated is False
        assert mention.temporal_relation_to_fall == TemporalRelation.UNKNOWN
        assert mention.certainty == Certainty.UNCLEAR

    def test_integral_float_offsets_accepted(self):
        mention = InjuryMention.from_dict(mention_dict(start_char=5.0, end_char=35.0))

        assert mention.start_char == 5
        assert isinstance(mention.start_char, int)

    @pytest.mark.parametrize("overrides", [
        {"text": None},
        {"start_char": "0"},
        {"end_char": 3.5},
        {"start_char": True},
        {"is_negated": "false"},
        {"injury_candidate": 7},
        {"body_site": ["arm"]},
    ])
    def test_wrong_types_rejected(self, overrides):
        with pytest.raises(EvidenceParseError):
            InjuryMention.from_dict(mention_dict(**overrides))

    def test_frozen(self):
        mention = InjuryMention.from_dict(mention_dict())

        with pytest.raises(dataclasses.FrozenInstanceError):
            mention.text = "changed"


class TestLayer1Evidence:
    """Tests for the evidence bundle."""

    def test_missing_collections_are_empty(self):
        evidence = Layer1Evidence.from_dict({})

        assert evidence.injury_mentions == ()
        assert evidence.no_injury_statements == ()
        assert evidence.metadata == EvidenceMetadata()

    def test_full_payload(self):
        data = {
            "injury_mentions": [mention_dict()],
            "negations": [{"text": "denies pain", "scope_hint": "pain", "start_char": 40, "end_char": 51}],
            "no_injury_statements": [{"text": "no injuries noted", "start_char": 60, "end_char": 77}],
            "timing_markers": [{"text": "post fall", "start_char": 80, "end_char": 89}],
            "body_sites": [{"text": "right forearm", "start_char": 17, "end_char": 30}],
            "metadata": {"model_version": "model-x", "extraction_warnings": ["narrative note"]},
        }

        evidence = Layer1Evidence.from_dict(data)

        assert evidence.no_injury_statements[0] == NoInjuryStatement("no injuries noted", 60, 77)
        assert evidence.negations[0].scope_hint == "pain"
        assert evidence.body_sites[0].text == "right forearm"
        assert evidence.to_dict() == data

    def test_coercion_warnings_added_to_metadata(self):
        evidence = Layer1Evidence.from_dict({
            "injury_mentions": [mention_dict(certainty="definite")],
            "metadata": {"model_version": "m", "extraction_warnings": ["existing"]},
        })

        warnings = evidence.metadata.extraction_warnings
        assert warnings[0] == "existing"
        assert "definite" in warnings[1]

    def test_lists_stored_as_tuples(self):
        evidence = Layer1Evidence(injury_mentions=[InjuryMention.from_dict(mention_dict())])

        assert isinstance(evidence.injury_mentions, tuple)

    @pytest.mark.parametrize("payload", [
        [],
        "evidence",
        {"injury_mentions": {"text": "bruise"}},
        {"injury_mentions": ["bruise"]},
        {"no_injury_statements": [{"text": "no injuries", "start_char": 0}]},
        {"metadata": "model"},
    ])
    def test_malformed_payload_rejected(self, payload):
        with pytest.raises(EvidenceParseError):
            Layer1Evidence.from_dict(payload)


class TestFinalInjury:
    """Tests for the output record."""

    def test_to_dict(self):
        injury = FinalInjury(phrase="bruise on knee", matched_injury=AllowedInjury.BRUISE)

        assert injury.to_dict() == {"phrase": "bruise on knee", "matched_injury": "bruise"}
