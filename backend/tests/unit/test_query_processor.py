from datetime import date, datetime, timezone

import pytest

from app.domain.search.expressions import Predicate
from app.domain.search.query import QueryProcessor
from app.domain.search.schemas import AdvancedOptions, SearchFilters

NOW = datetime(2024, 6, 15, 9, 30, tzinfo=timezone.utc)


@pytest.fixture
def processor() -> QueryProcessor:
	return QueryProcessor(now=lambda: NOW)


def _ops(expression) -> list[str]:
	return [predicate.op for predicate in expression.predicates]


def test_normalise_strips_controls_and_caps_terms():
	processor = QueryProcessor(max_length=200, max_terms=3)
	assert processor.normalise("  john\x00\tsmith \n ") == "john smith"
	assert processor.normalise("a b c d e") == "a b c"
	assert processor.normalise(None) == ""


def test_build_always_adds_visibility_first(processor):
	expression = processor.build("", SearchFilters(), actor_id="owner-1")
	assert expression.predicates[0] == Predicate("privacy", "visible", "owner-1")
	assert expression.text_query is None


def test_build_groups_terms_without_synonyms(processor):
	expression = processor.build("John Smith", SearchFilters())
	assert expression.text_query.groups == (("john",), ("smith",))
	assert expression.text_query.fuzzy is False


def test_synonyms_only_widen_each_group(processor):
	expression = processor.build("died 1990", SearchFilters(), options=AdvancedOptions(synonyms=True))
	first, second = expression.text_query.groups
	assert first[0] == "died"
	assert "passed away" in first
	assert second == ("1990",)


def test_filters_round_trip_through_expression(processor):
	filters = SearchFilters(
		funeral_home="fh-1",
		date_range={"start": "2020-01-01", "end": "2020-12-31"},
		location={"city": "Austin", "state": "TX"},
		tags=["veteran", "educator"],
		media_type="photos",
		year_range="recent",
		sort_by="date_desc",
		limit=10,
		offset=5,
	)
	expression = processor.build("smith", filters)
	rebuilt = expression.to_filters()
	for name in filters.model_fields_set:
		assert getattr(rebuilt, name) == getattr(filters, name), name


def test_year_range_all_has_no_cutoff(processor):
	expression = processor.build("", SearchFilters(year_range="all"))
	window = next(p.value for p in expression.predicates if p.op == "year_range")
	assert window.mode == "all"
	assert window.cutoff is None


def test_tags_string_is_split():
	filters = SearchFilters(tags="veteran, educator ,,")
	assert filters.tags == ["veteran", "educator"]
	assert SearchFilters(tags=[]).tags is None


def test_date_range_must_be_ordered():
	with pytest.raises(ValueError):
		SearchFilters(date_range={"start": "2021-01-01", "end": "2020-01-01"})


@pytest.mark.parametrize(
	("text", "start", "end"),
	[
		("smith last year", date(2023, 1, 1), date(2023, 12, 31)),
		("smith this month", date(2024, 6, 1), date(2024, 6, 30)),
		("smith last month", date(2024, 5, 1), date(2024, 5, 31)),
		("smith in the last decade", date(2014, 1, 1), date(2023, 12, 31)),
		("smith in 1998", date(1998, 1, 1), date(1998, 12, 31)),
	],
)
def test_extract_date_range(processor, text, start, end):
	date_range, remaining = processor.extract_date_range(text)
	assert (date_range.start, date_range.end) == (start, end)
	assert remaining.startswith("smith")


def test_future_year_is_not_a_date(processor):
	date_range, remaining = processor.extract_date_range("class of 2099")
	assert date_range is None
	assert remaining == "class of 2099"


def test_extract_location_prefers_capitalised_place(processor):
	location, remaining = processor.extract_location("John Smith from Austin, Texas")
	assert location.city == "Austin"
	assert location.state == "Texas"
	assert remaining == "John Smith"


def test_extract_location_skips_non_places(processor):
	location, remaining = processor.extract_location("in loving memory")
	assert location is None
	assert remaining == "in loving memory"


def test_advanced_keeps_explicit_filters(processor):
	filters = SearchFilters(location={"city": "Denver"})
	options = AdvancedOptions(location_nlp=True, date_nlp=True)
	expression, text = processor.advanced("smith in Boston last year", filters, options)
	assert text == "smith"
	rebuilt = expression.to_filters()
	assert rebuilt.location.city == "Denver"
	assert rebuilt.date_range.start == date(2023, 1, 1)
	assert "text" in _ops(expression)
