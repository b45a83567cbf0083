"""Cell token parsing and tier conversion helpers."""

from __future__ import annotations

from typing import Iterable, Optional

import h3


def parse_cell_list(param: Optional[str], max_cells: int) -> list[str]:
	"""Split a comma-separated cell list, dropping invalid and repeated tokens."""

	if not isinstance(param, str) or not param.strip():
		return []
	out: list[str] = []
	seen: set[str] = set()
	for token in param.split(","):
		token = token.strip().lower()
		if not token or token in seen:
			continue
		if not h3.is_valid_cell(token):
			continue
		seen.add(token)
		out.append(token)
		if len(out) >= max_cells:
			break
	return out


def cells_at_resolution(cells: Iterable[str], resolution: int, *, max_cells: int) -> list[str]:
	"""Re-express cells at ``resolution`` (parents when finer, children when coarser)."""

	out: list[str] = []
	seen: set[str] = set()
	for cell in cells:
		current = h3.get_resolution(cell)
		if current == resolution:
			mapped = [cell]
		elif current > resolution:
			mapped = [h3.cell_to_parent(cell, resolution)]
		else:
			mapped = list(h3.cell_to_children(cell, resolution))
		for item in mapped:
			if item in seen:
				continue
			seen.add(item)
			out.append(item)
			if len(out) >= max_cells:
				return out
	return out


def clamp_int(value: Optional[int], fallback: int, lower: int, upper: int) -> int:
	if value is None:
		return fallback
	return max(lower, min(upper, int(value)))
