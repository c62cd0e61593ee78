"""Tests for row_service."""

import pytest

from app.services import row_service


PEOPLE = [
    {"id": 1, "name": "Alice", "city": "Hanoi", "score": 10},
    {"id": 2, "name": "Alice", "city": "Hanoi", "score": 11},
    {"id": 10, "name": "Bob", "city": "Hue", "score": 12},
]


class TestAnalyzeRow:
    @pytest.mark.parametrize("index", [-1, 3, True, "0", None])
    def test_invalid_row_index(self, index):
        with pytest.raises(ValueError, match="Invalid row index or data"):
            row_service.analyze_row(PEOPLE, index)

    def test_empty_table(self):
        with pytest.raises(ValueError, match="Invalid row index or data"):
            row_service.analyze_row([], 0)

    def test_unknown_analysis_type(self):
        with pytest.raises(ValueError, match="Unknown analysis type"):
            row_service.analyze_row(PEOPLE, 0, "psychic")

    def test_comprehensive(self):
        result = row_service.analyze_row(PEOPLE, 1)
        assert result["rowIndex"] == 1
        assert result["row"] == PEOPLE[1]
        assert set(result["results"]) == {"profile", "comparison", "anomalies", "similarity"}
        assert result["metadata"]["rowPosition"] == 2
        assert result["metadata"]["datasetSize"] == 3

    def test_single_section(self):
        result = row_service.analyze_row(PEOPLE, 0, "profile")
        assert list(result["results"]) == ["profile"]
        summary = result["results"]["profile"]["summary"]
        assert summary["numericColumns"] == 2
        assert summary["stringColumns"] == 2

    def test_iso_date_strings_get_temporal_distribution(self):
        data = [{"seen": "2024-03-01"}, {"seen": "2024-07-15"}]
        result = row_service.analyze_row(data, 0, "comparison")
        temporal = result["results"]["comparison"]["distribution"]["temporal"]
        assert temporal["seen"]["seasonality"]["season"] == "spring"
        assert temporal["seen"]["position"] == "0.00%"


class TestMetadataAndProfile:
    def test_blank_strings_count_as_nulls(self):
        row = {"a": 1, "b": None, "c": "", "d": "x"}
        meta = row_service.row_metadata(row, 0, [row])
        assert meta["nullColumns"] == 2
        assert meta["completeness"] == "50.00%"
        assert meta["columnTypes"] == {"a": "number", "b": "null", "c": "null", "d": "string"}

    def test_fingerprint_is_truncated(self):
        row = {"text": "x" * 150}
        assert len(row_service.fingerprint(row)) == 100

    def test_negative_amount_lowers_consistency(self):
        profile = row_service.row_profile({"amount": -5, "note": "ok"})
        consistency = profile["quality"]["consistency"]
        assert consistency["score"] == 97
        assert consistency["issues"] == ["Negative value in amount"]


class TestComparison:
    def test_row_against_column_statistics(self):
        result = row_service.compare_to_dataset(PEOPLE[2], 2, PEOPLE)
        score = result["statistics"]["score"]
        assert score["mean"] == pytest.approx(11.0)
        assert score["percentile"] == "100.00%"
        assert score["position"] == "above_average"
        assert result["position"]["position"] == "second_half"

    def test_lowest_value(self):
        score = row_service.compare_to_dataset(PEOPLE[0], 0, PEOPLE)["statistics"]["score"]
        assert score["percentile"] == "33.33%"
        assert score["position"] == "below_average"

    def test_categorical_frequency(self):
        distribution = row_service.compare_to_dataset(PEOPLE[0], 0, PEOPLE)["distribution"]
        assert distribution["categorical"]["name"]["frequency"] == 2
        assert distribution["categorical"]["name"]["uniqueness"] == "common"


class TestAnomalies:
    def test_sequence_break_and_unique_combination(self):
        anomalies = row_service.detect_anomalies(PEOPLE[2], 2, PEOPLE)
        types = {a["type"] for a in anomalies}
        assert "rare_combination" in types
        breaks = [a for a in anomalies if a["type"] == "sequence_break"]
        assert breaks[0]["column"] == "id"
        assert breaks[0]["expected"] == 3
        assert breaks[0]["actual"] == 10

    def test_in_sequence_row_is_clean(self):
        assert row_service.detect_anomalies(PEOPLE[1], 1, PEOPLE) == []

    def test_case_and_whitespace_issues(self):
        row = {"label": "hELLo", "code": " pad "}
        types = [a["type"] for a in row_service.detect_anomalies(row, 0, [row])]
        assert "format_inconsistency" in types
        assert "whitespace_issue" in types

    def test_excessive_nulls(self):
        row = {"a": None, "b": None, "c": 1}
        anomalies = row_service.detect_anomalies(row, 0, [row])
        assert anomalies[-1]["type"] == "excessive_nulls"
        assert anomalies[-1]["percentage"] == "66.67%"


class TestSimilarity:
    def test_normalized_edit_similarity(self):
        assert row_service.string_similarity("kitten", "sitting") == pytest.approx(4 / 7)
        assert row_service.string_similarity("", "abc") == 0.0
        assert row_service.string_similarity("same", "same") == 1.0

    def test_empty_strings_are_identical(self):
        assert row_service.string_similarity("", "") == 1.0

    def test_near_duplicates(self):
        data = [
            {"name": "Alexander Hamilton", "city": "New York City", "n": 1},
            {"name": "Alexander Hamilton", "city": "New York City", "n": 2},
            {"name": "Zed", "city": "Oslo", "n": 3},
        ]
        result = row_service.find_similar_rows(0, data)
        assert result["totalSimilar"] == 1
        assert result["nearDuplicates"] == 1
        assert result["similarRows"][0]["rowIndex"] == 1
        assert result["summary"]["hasDuplicates"] is True

    def test_similar_but_not_duplicate(self):
        result = row_service.find_similar_rows(0, PEOPLE)
        assert result["similarRows"][0]["rowIndex"] == 1
        assert result["similarRows"][0]["matchType"] == "similar"
