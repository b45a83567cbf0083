import random

from hexfeed.domain.posts import policy
from hexfeed.domain.posts.models import RawDocument
from hexfeed.domain.search.reducer import EntityFilters, reduce


def _raw(**fields):
	payload = {
		"deviceId": "dev-1",
		"username": "alice",
		"messageId": "m1",
		"time": "2025-03-01T12:00:00Z",
		"content": "hello",
	}
	payload.update(fields)
	return RawDocument.from_store({key: value for key, value in payload.items() if value is not None})


def test_visibility_rules():
	assert policy.is_visible(_raw())
	assert not policy.is_visible(_raw(username=None))
	assert not policy.is_visible(_raw(messageId=""))
	assert not policy.is_visible(_raw(time="yesterday"))
	assert not policy.is_visible(_raw(time=1700000000))
	assert not policy.is_visible(_raw(content=None))
	assert policy.is_visible(_raw(content=""))


def test_anonymous_post_needs_complete_link():
	assert not policy.is_visible(_raw(username=None, replyLinkHandle="fox-12"))
	assert not policy.is_visible(_raw(username=None, replyLinkHandle="fox-12", replyLinkEntropy="  "))
	post = policy.to_post(_raw(username=None, replyLinkHandle="fox-12", replyLinkEntropy="abc", displayName="Fox"))
	assert post is not None
	assert post.identity == "fox-12"
	assert post.display_name == "Fox"


def test_named_post_drops_link_fields():
	post = policy.to_post(_raw(replyLinkHandle="fox-12", replyLinkEntropy="abc", displayName="Fox"))
	assert post.reply_link_handle is None
	assert post.reply_link_entropy is None
	assert post.display_name is None


def test_mistyped_fields_are_missing():
	raw = RawDocument.from_store({"messageId": 5, "username": ["x"], "entities": {"hashtags": ["a", 3]}})
	assert raw.message_id is None
	assert raw.username is None
	assert raw.hashtags == ("a",)


def test_orders_by_time_descending():
	docs = [
		_raw(messageId="a", time="2025-03-01T10:00:00Z"),
		_raw(messageId="b", time="2025-03-01T12:00:00Z"),
		_raw(messageId="c", time="2025-03-01T11:00:00Z"),
	]
	assert [post.message_id for post in reduce(docs, page_limit=10)] == ["b", "c", "a"]


def test_equal_times_break_ties_by_message_id():
	docs = [_raw(messageId=mid, time="2025-03-01T10:00:00Z") for mid in ("z", "a", "m")]
	assert [post.message_id for post in reduce(docs, page_limit=10)] == ["a", "m", "z"]


def test_duplicates_collapse():
	docs = [_raw(), _raw(deviceId="dev-2"), _raw(messageId="m2")]
	page = reduce(docs, page_limit=10)
	assert [post.message_id for post in page] == ["m1", "m2"]


def test_result_independent_of_input_order():
	docs = [
		_raw(messageId=f"m{index}", time=f"2025-03-01T10:00:{index % 7:02d}Z", username=f"user{index % 3}")
		for index in range(30)
	]
	docs.extend(docs[:10])
	expected = reduce(docs, page_limit=15)
	shuffled = list(docs)
	random.Random(7).shuffle(shuffled)
	assert reduce(shuffled, page_limit=15) == expected


def test_reduce_is_idempotent():
	docs = [_raw(messageId=f"m{index}", time=f"2025-03-01T10:{index:02d}:00Z") for index in range(12)]
	once = reduce(docs, page_limit=8)
	again = reduce([_raw(messageId=post.message_id, time=post.time) for post in once], page_limit=8)
	assert again == once


def test_truncates_to_page_limit():
	docs = [_raw(messageId=f"m{index:02d}", time=f"2025-03-01T10:{index:02d}:00Z") for index in range(40)]
	page = reduce(docs, page_limit=5)
	assert [post.message_id for post in page] == ["m39", "m38", "m37", "m36", "m35"]


def test_invisible_documents_are_dropped():
	docs = [_raw(), _raw(messageId="m2", username=None), _raw(messageId="m3", time="not-a-time")]
	assert [post.message_id for post in reduce(docs, page_limit=10)] == ["m1"]


def test_text_filter_matches_name_and_content():
	docs = [
		_raw(messageId="a", content="Tacos tonight"),
		_raw(messageId="b", content="nothing here", username="TacoBell"),
		_raw(messageId="c", content="quiet"),
	]
	filters = EntityFilters.build(text="TACO")
	assert {post.message_id for post in reduce(docs, page_limit=10, filters=filters)} == {"a", "b"}


def test_hashtag_filters_any_and_all():
	docs = [
		_raw(messageId="a", entities={"hashtags": ["Food"]}),
		_raw(messageId="b", entities={"hashtags": ["food", "art"]}),
		_raw(messageId="c", entities={"hashtags": ["art"]}),
	]
	any_filter = EntityFilters.build(hashtags=["food", "art"])
	all_filter = EntityFilters.build(hashtags=["FOOD", "art"], match_all=True)
	assert {post.message_id for post in reduce(docs, page_limit=10, filters=any_filter)} == {"a", "b", "c"}
	assert {post.message_id for post in reduce(docs, page_limit=10, filters=all_filter)} == {"b"}


def test_mention_filter_is_case_sensitive():
	docs = [
		_raw(messageId="a", entities={"mentions": ["Bob"]}),
		_raw(messageId="b", entities={"mentions": ["bob"]}),
	]
	filters = EntityFilters.build(mentions=["bob"])
	assert [post.message_id for post in reduce(docs, page_limit=10, filters=filters)] == ["b"]


def test_cell_filter_uses_requested_tier():
	docs = [
		_raw(messageId="a", geolocator={"h3_res7": "872830828ffffff"}),
		_raw(messageId="b", geolocator={"h3_res7": "87283082affffff"}),
		_raw(messageId="c"),
	]
	filters = EntityFilters.build(cells=["872830828ffffff"], resolution=7)
	assert [post.message_id for post in reduce(docs, page_limit=10, filters=filters)] == ["a"]


def test_location_filter_matches_any_place_name():
	docs = [
		_raw(messageId="a", content="Sunset at Eden Park"),
		_raw(messageId="b", content="lunch at Findlay Market"),
		_raw(messageId="c", content="nothing local"),
	]
	filters = EntityFilters.build(locations=["eden park", " Findlay Market "])
	assert {post.message_id for post in reduce(docs, page_limit=10, filters=filters)} == {"a", "b"}


def test_empty_filters():
	assert EntityFilters.build().is_empty()
	assert EntityFilters.build(text="   ").is_empty()
	assert EntityFilters.build(locations=["  "]).is_empty()
	assert not EntityFilters.build(mentions=["x"]).is_empty()
	assert not EntityFilters.build(locations=["Eden Park"]).is_empty()
