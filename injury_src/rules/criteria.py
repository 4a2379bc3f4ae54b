"""Fall-injury reporting criteria.

Small predicates and ranking keys used by the rules engine. Kept separate so
each criterion can be tested on its own.
"""

from .schemas import (
    Certainty,
    InjuryMention,
    NoInjuryStatement,
    TemporalRelation,
)

# Pain counts as a fall injury only with a location or explicit fall timing
PAIN_CONTEXT_RELATIONS = frozenset({
    TemporalRelation.POST_FALL,
    TemporalRelation.DURING_FALL,
})


def has_body_site(mention: InjuryMention) -> bool:
    """Check whether the mention names a non-blank body site."""
    return bool(mention.body_site and mention.body_site.strip())


def has_pain_context(mention: InjuryMention) -> bool:
    """Check whether a pain mention is tied to the fall.

    Accepted if the mention has a body site, OR it is explicit and happened
    during or after the fall.
    """
    if has_body_site(mention):
        return True
    return (
        mention.temporal_relation_to_fall in PAIN_CONTEXT_RELATIONS
        and mention.certainty == Certainty.EXPLICIT
    )


def latest_no_injury_statement(
    statements: tuple[NoInjuryStatement, ...] | list[NoInjuryStatement],
) -> NoInjuryStatement | None:
    """Get the no-injury statement that ends last in the note.

    Ties on end_char go to the statement listed first.
    """
    if not statements:
        return None
    return max(statements, key=lambda s: s.end_char)


def is_explicit_after(mention: InjuryMention, statement: NoInjuryStatement) -> bool:
    """Check whether a mention overrides a no-injury statement.

    The mention must be explicit, not negated, and start strictly after the
    statement ends.
    """
    return (
        mention.certainty == Certainty.EXPLICIT
        and not mention.is_negated
        and mention.start_char > statement.end_char
    )


def mentions_own_body_site(mention: InjuryMention) -> bool:
    """Check whether the mention text contains its own body site (case-insensitive)."""
    if not has_body_site(mention):
        return False
    return mention.body_site.strip().lower() in mention.text.lower()


def dedup_rank(mention: InjuryMention, position: int) -> tuple[int, int, int, int]:
    """Sort key for picking one mention per injury label (lowest wins).

    1. Longer text
    2. Text containing its own body site
    3. Earlier start_char
    4. Earlier position in the evidence
    """
    return (
        -len(mention.text),
        0 if mentions_own_body_site(mention) else 1,
        mention.start_char,
        position,
    )
