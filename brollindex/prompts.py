"""Instruction text sent to Gemini for classification, verification and re-picks."""

from __future__ import annotations

import textwrap

from brollindex.taxonomy import Taxonomy

# Guidance for shot types the default taxonomy ships with. Project-specific
# shot types are listed without a gloss.
SHOT_TYPE_GUIDE = {
    "talking-head": "presenter's face or upper body is visible",
    "wide": "broad scene, room visible, a person may be in frame",
    "close-up": "tight on the primary subject, fills most of the frame, NO person visible",
    "top-down": "camera pointing straight down from above",
    "macro": "extreme close-up of texture or detail",
    "product-shot": "equipment or product cleanly framed as the subject, studio-style",
    "action-shot": "hands performing a technique, person's face NOT visible",
    "beauty-shot": "styled final presentation of the subject, no person",
    "pour-shot": "liquid being poured, tight framing on the pour",
}

SEGMENT_KEYS = (
    "startTime", "endTime", "bestMoment", "shotType", "brollScore", "equipment",
    "products", "technique", "subjectDescriptors", "description",
    "presenterVisible", "other",
)

CLASSIFICATION_PROMPT = textwrap.dedent("""\
You are a strict B-roll classifier.{context} You are watching a complete video. Find the SEGMENTS that work as STANDALONE B-roll inserts: footage that could be cut into any related video without its original context.

Watch the WHOLE video and report every continuous segment that qualifies.

## Segment rules
- A segment is one CONTINUOUS shot between camera cuts. Never split a continuous shot into several short entries.
- Every segment is at least 2 seconds long. Fold shorter shots into a neighbour or skip them.
- Consecutive seconds of the same subject from the same angle are ONE segment.
- startTime and endTime must differ. "0:03" to "0:03" is invalid.
- When the camera cuts, start a new segment.

## Scoring rules
- B-roll must work WITHOUT the presenter. Any visible person (face, torso, hands held toward the camera, gesturing) disqualifies a shot.
- Hands performing a technique count only when the technique is the focus and nothing else of the person is visible.
- "top-down" means the camera is directly above looking straight down. A visible horizon, wall, face or torso rules it out.
- A wide room or table scene with a person present is "wide" or "talking-head", not B-roll.
- Text overlays, title cards, subscribe buttons and captions make a segment NOT B-roll (score 0.1 or below).
- Be HARSH. A typical 60-second video holds only 5-15 seconds of genuinely usable B-roll.

## Fields for each segment
1. startTime: MM:SS where the segment begins
2. endTime: MM:SS where the segment ends
3. shotType: one of: {shot_types}
{shot_type_guide}
4. brollScore: 0.0 to 1.0, strictly:
   - 0.85-1.0 PERFECT: close-up, macro or top-down of the subject. Nobody in frame. Clean framing. No text.
   - 0.65-0.85 GOOD: clear subject, at most a hand doing a technique, no face or body.
   - 0.5-0.65 BORDERLINE: subject clear but an arm or body partly visible, or loose framing.
   - 0.25-0.5 NOT USABLE: person clearly visible, wide framing, or subject secondary to the presenter.
   - 0.0-0.25 NOT B-ROLL: talking head, full scene with presenter, title cards, text overlays.
   A visible face or torso scores BELOW 0.3. Hands doing a technique that is the focus score 0.5-0.8.
5. equipment: array from: {equipment}
6. products: array of recognizable brand or model names. Known products: {products}
7. technique: array from: {techniques}
8. subjectDescriptors: array from: {descriptors} (empty array if none apply)
9. description: one ACCURATE sentence covering what is in frame, the camera angle and the action.
10. presenterVisible: boolean. TRUE if any part of a person is visible. FALSE only when the frame shows just the subject or equipment, or disembodied hands doing a technique.
11. other: array of notable visual elements (e.g. "steam", "text-overlay", "motion-blur", "reflection")
12. bestMoment: MM:SS of the single frame that best shows what the description says.

Only return segments scoring 0.3 or above.

Respond with a JSON array of segment objects using exactly these keys:
{{ {keys} }}

If the video has no usable B-roll at all, return an empty array: []

Respond ONLY with the JSON array, no markdown fencing, no extra text.""")

VERIFY_PROMPT = textwrap.dedent("""\
These are frames taken from a video, each paired with a description. Check whether each frame ACTUALLY shows what its description says.

Be strict: the image must clearly depict the subject and action described. If the description says "pouring coffee beans" but the image shows a grinder with nothing being poured, it does NOT match.

{descriptions}

Respond with a JSON array, one object per image in order:
- "index": image number (1-based)
- "matches": boolean, true when the image shows what the description says

Respond ONLY with the JSON array, no markdown fencing.""")

REPICK_PROMPT = textwrap.dedent("""\
Find the frame that best matches this description: "{description}"

The {count} images above are candidate frames from nearby timestamps. Which image number (1-based) matches the description best?

Respond with ONLY a JSON object: {{"bestImage": <number>}}
No markdown fencing.""")


def _join(terms: list[str]) -> str:
    return ", ".join(terms) if terms else "(none listed)"


def build_classification_prompt(taxonomy: Taxonomy) -> str:
    """Render the classification instruction for *taxonomy*."""
    context = f"\nContent context: {taxonomy.prompt_context}\n" if taxonomy.prompt_context else ""
    guide = "\n".join(
        f'   - "{shot}": {SHOT_TYPE_GUIDE[shot]}'
        for shot in taxonomy.shot_types
        if shot in SHOT_TYPE_GUIDE
    )
    return CLASSIFICATION_PROMPT.format(
        context=context,
        shot_types=_join(taxonomy.shot_types),
        shot_type_guide=guide,
        equipment=_join(taxonomy.equipment),
        products=_join(taxonomy.products),
        techniques=_join(taxonomy.techniques),
        descriptors=_join(taxonomy.subject_descriptors),
        keys=", ".join(f'"{k}"' for k in SEGMENT_KEYS),
    )


def build_verify_prompt(entries: list[tuple[str, str, str]]) -> str:
    """Batch match prompt for ``(start_time, end_time, description)`` entries."""
    descriptions = "\n".join(
        f'Image {i} ({start}-{end}): "{description}"'
        for i, (start, end, description) in enumerate(entries, 1)
    )
    return VERIFY_PROMPT.format(descriptions=descriptions)


def build_repick_prompt(description: str, count: int) -> str:
    return REPICK_PROMPT.format(description=description, count=count)
