from __future__ import annotations

from typing import Final

from hypothesis import strategies as st

INT64_MIN: Final = -(2**63)
INT64_MAX: Final = 2**63 - 1

json_text = st.text(st.characters(min_codepoint=0x20, max_codepoint=0xD7FF))
"""Generate strings that every ijson backend decodes identically."""

json_scalars = st.one_of(
    st.none(),
    st.booleans(),
    st.integers(min_value=INT64_MIN, max_value=INT64_MAX),
    st.floats(allow_nan=False, allow_infinity=False),
    json_text,
)


def json_trees(*, max_leaves: int = 20) -> st.SearchStrategy[object]:
    """Generate trees of dicts, lists and scalars, like `json.loads()` creates.

    Keys never start with `$`, so that no object is read as protocol metadata.
    """
    keys = json_text.filter(lambda k: not k.startswith("$"))
    return st.recursive(
        json_scalars,
        lambda children: st.one_of(
            st.lists(children, max_size=5),
            st.dictionaries(keys, children, max_size=5),
        ),
        max_leaves=max_leaves,
    )


people = st.fixed_dictionaries(
    {"name": json_text, "age": st.integers(min_value=0, max_value=150)},
    optional={"email": st.one_of(st.none(), json_text)},
)
"""Generate JSON objects with the members of `test.models.Person`."""
