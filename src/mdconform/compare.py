"""Render one corpus example and classify the output.

Classification is strict string equality first, then structural equality of
the parsed fragments (see `mdconform.structure`).
"""

from __future__ import annotations

import enum
import logging
import traceback
from collections.abc import Iterable
from dataclasses import dataclass
from typing import TextIO

from mdconform.corpus import Config, TestCase
from mdconform.extensions import resolve
from mdconform.renderer import Renderer, render_markdown
from mdconform.report import print_verbose_failure
from mdconform.structure import parse_fragment, structurally_equal

logger = logging.getLogger("mdconform.compare")


class CompareLevel(enum.Enum):
    STRICT = "strict"
    LOOSE = "loose"
    FAIL = "fail"
    ERROR = "error"


@dataclass(frozen=True)
class CompareResult:
    test_case: TestCase
    result: str | None
    compare_level: CompareLevel


def compare_result(
    config: Config,
    test_case: TestCase,
    *,
    renderer: Renderer = render_markdown,
    throw_on_error: bool = False,
    verbose_fail: bool = False,
    verbose_loose_match: bool = False,
    extensions: Iterable[str] = frozenset(),
    stream: TextIO | None = None,
    color: bool = False,
) -> CompareResult:
    """Render `test_case` and classify the output.

    `extensions` are merged with the case's own extensions. Unknown names
    raise UnsupportedExtensionError. Render faults become `ERROR` unless
    `throw_on_error` is set, in which case they propagate unchanged.
    """

    renderer_config = resolve(set(extensions) | test_case.extensions)

    try:
        output = renderer(test_case.markdown, renderer_config)
    except Exception as err:
        if throw_on_error:
            raise
        logger.debug("%s: render fault: %s", test_case, err)
        if verbose_fail:
            print_verbose_failure(
                config.base_url,
                "ERROR",
                test_case,
                f"Thrown: {err}\n{traceback.format_exc()}",
                stream=stream,
                color=color,
            )
        return CompareResult(test_case, None, CompareLevel.ERROR)

    if test_case.html == output:
        logger.debug("%s: strict", test_case)
        return CompareResult(test_case, output, CompareLevel.STRICT)

    loose_match = structurally_equal(parse_fragment(test_case.html), parse_fragment(output))

    if not loose_match and verbose_fail:
        print_verbose_failure(config.base_url, "FAIL", test_case, output, stream=stream, color=color)

    if loose_match and verbose_loose_match:
        print_verbose_failure(config.base_url, "LOOSE", test_case, output, stream=stream, color=color)

    level = CompareLevel.LOOSE if loose_match else CompareLevel.FAIL
    logger.debug("%s: %s", test_case, level.value)
    return CompareResult(test_case, output, level)
