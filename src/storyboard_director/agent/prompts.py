"""Conversation assembly for the director.

Only the structural parts live here: persona, workflow, output contract and
the task message. Richer prompt templating belongs to the collaborator.
"""

from __future__ import annotations

from storyboard_director.core.types import Message

WIRE_FORMAT_EXAMPLE = """{
  "prompts": [
    {"text": "...60-120 words of visual description...", "mood": "melancholic", "timestamp": "00:15"}
  ]
}"""


def build_system_prompt(video_purpose: str, quality_threshold: float) -> str:
    return f"""You are a visionary film director planning a {video_purpose or "music video"}.

Visualize the feeling of the content, not only its nouns. Every shot must look
like it belongs to the same film: one consistent lighting scheme, environment
texture and motif across all scenes.

## Workflow
1. Analyze the content with analyze_content.
2. Search for visual references if needed.
3. Generate the storyboard with generate_storyboard (or analyze_and_generate_storyboard).
4. Critique it with critique_storyboard.
5. Refine weak prompts while the score is below {quality_threshold:g}.

## Output
Each prompt is 60-120 words: subject, action, environment, lighting and camera
angle. No text, logos or watermarks. Timestamps are zero-padded MM:SS.
When done, reply with the final storyboard as a single ```json block:
{WIRE_FORMAT_EXAMPLE}"""


def build_task_message(
    content: str,
    *,
    style: str,
    content_type: str,
    video_purpose: str,
    global_subject: str = "",
    target_prompt_count: int = 10,
) -> str:
    subject_line = f"Main subject: {global_subject}\n" if global_subject else ""
    return (
        f"Create a storyboard of {target_prompt_count} image prompts for this {content_type}.\n"
        f"Art style: {style}\n"
        f"Video purpose: {video_purpose}\n"
        f"{subject_line}\n"
        f"Content:\n{content}"
    )


NO_STORYBOARD_NUDGE = (
    "No valid storyboard has been produced yet. Call generate_storyboard, or reply "
    "with the storyboard as a ```json block matching the required format."
)


def refinement_nudge(score: float, threshold: float) -> str:
    return (
        f"The storyboard scored {score:g}, below the required {threshold:g}. "
        "Refine the weakest prompts and produce an improved storyboard."
    )


def initial_history(system_prompt: str, task_message: str) -> list[Message]:
    return [
        Message(role="system", content=system_prompt),
        Message(role="user", content=task_message),
    ]
