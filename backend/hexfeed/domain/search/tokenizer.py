"""Search query tokenizer.

Splits a raw query into hashtags (lowercased, deduplicated), mentions
(case preserved, deduplicated), pin-marker locations and residual text.
Parsing is total: malformed input degrades to plain text, nothing raises.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Optional

LOCATION_MARKER = "📍"

_HASHTAG_RE = re.compile(r"#([A-Za-z0-9_]{1,50})")
_MENTION_RE = re.compile(r"@([A-Za-z0-9_]{1,30})")
_URL_RE = re.compile(r"https?://")
_WS_RE = re.compile(r"\s+")
_LOCATION_STOP = frozenset(".,;:!?)]}")


@dataclass(frozen=True, slots=True)
class LocationRef:
	name: str
	quoted: bool = False


@dataclass(frozen=True, slots=True)
class Token:
	kind: str
	value: str
	start: int
	end: int
	quoted: bool = False


@dataclass(slots=True)
class ParsedQuery:
	raw: str = ""
	hashtags: list[str] = field(default_factory=list)
	mentions: list[str] = field(default_factory=list)
	locations: list[LocationRef] = field(default_factory=list)
	text: Optional[str] = None
	tokens: list[Token] = field(default_factory=list)

	def has_filters(self, *, min_text_length: int = 2) -> bool:
		return bool(
			self.hashtags
			or self.mentions
			or self.locations
			or (self.text is not None and len(self.text) >= min_text_length)
		)

	def single_mention(self) -> Optional[str]:
		"""The mention when the query is exactly one ``@name`` and nothing else."""

		if len(self.mentions) == 1 and not self.hashtags and not self.locations and self.text is None:
			return self.mentions[0]
		return None


def _parse_location(raw: str, start: int) -> tuple[Optional[LocationRef], int]:
	"""Parse the location after the marker at ``start``; returns the ref and the end offset."""

	pos = start + len(LOCATION_MARKER)
	size = len(raw)
	# single spaces only; a double space terminates
	while pos < size and raw[pos] == " " and raw[pos + 1 : pos + 2] != " ":
		pos += 1

	if pos < size and raw[pos] == '"':
		pos += 1
		chars: list[str] = []
		while pos < size:
			char = raw[pos]
			nxt = raw[pos + 1 : pos + 2]
			if char == "\\" and nxt in ('"', "\\"):
				chars.append(nxt)
				pos += 2
			elif char == '"':
				pos += 1
				break
			else:
				chars.append(char)
				pos += 1
		name = "".join(chars).strip()
		return (LocationRef(name, True) if name else None), pos

	chars = []
	while pos < size:
		char = raw[pos]
		if (
			char == "\n"
			or raw.startswith("  ", pos)
			or char in _LOCATION_STOP
			or char in "@#"
			or raw.startswith(LOCATION_MARKER, pos)
			or _URL_RE.match(raw, pos)
		):
			break
		chars.append(char)
		pos += 1
	name = "".join(chars).strip()
	return (LocationRef(name, False) if name else None), pos


def parse(raw: Optional[str]) -> ParsedQuery:
	if not raw or not isinstance(raw, str):
		return ParsedQuery()

	result = ParsedQuery(raw=raw)
	fragments: list[str] = []
	buffer: list[str] = []
	buffer_start = 0
	pos = 0
	size = len(raw)

	def flush(end: int) -> None:
		text = "".join(buffer)
		buffer.clear()
		if text.strip():
			result.tokens.append(Token("text", text, buffer_start, end))
			fragments.append(text.strip())

	while pos < size:
		char = raw[pos]
		if char == "#":
			match = _HASHTAG_RE.match(raw, pos)
			if match:
				flush(pos)
				value = match.group(1).lower()
				result.tokens.append(Token("hashtag", value, pos, match.end()))
				if value not in result.hashtags:
					result.hashtags.append(value)
				pos = buffer_start = match.end()
				continue
		if char == "@":
			match = _MENTION_RE.match(raw, pos)
			if match:
				flush(pos)
				value = match.group(1)
				result.tokens.append(Token("mention", value, pos, match.end()))
				if value not in result.mentions:
					result.mentions.append(value)
				pos = buffer_start = match.end()
				continue
		if raw.startswith(LOCATION_MARKER, pos):
			flush(pos)
			location, end = _parse_location(raw, pos)
			if location is not None:
				result.tokens.append(Token("location", location.name, pos, end, location.quoted))
				result.locations.append(location)
			pos = buffer_start = end
			continue
		if not buffer:
			buffer_start = pos
		buffer.append(char)
		pos += 1

	flush(pos)
	text = _WS_RE.sub(" ", " ".join(fragments)).strip()
	result.text = text or None
	return result
