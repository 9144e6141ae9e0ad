import re
import json
import base64
import logging
from typing import Any

import requests

from socialdesk.config import settings

logger = logging.getLogger(__name__)

PLATFORMS = ("facebook", "threads")
CAPTION_POST_TYPES = ("profile post", "group post", "page post")
PROMPT_TYPES = ("image", "video")
MEDIA_TYPES = ("image", "video")

DEFAULT_COMMENT = "Great post! 👏 What do you think about this? 💭"

NUMBERED_RE = re.compile(r"^\d+[.)]\s*(.+)")
HEADER_RE = re.compile(r"^\**\s*CAPTIONS:\s*\**$", re.IGNORECASE)
NUMBERED_COMMENT_RE = re.compile(r"^\**\s*COMMENT\s*(\d+)?\s*:\s*\**\s*(.*)", re.IGNORECASE)
SINGLE_COMMENT_RE = re.compile(r"COMMENT:\s*(.+)", re.IGNORECASE)
TEXT_POST_MARKER_RE = re.compile(r"POST\s+\d+:", re.IGNORECASE)


class GenerationError(RuntimeError):
    def __init__(self, message: str, status_code: int = 500):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


# Hand-written instruction blocks. Each names the marker that opens a comment
# line so the parser can tell captions and comments apart without JSON.
TOPIC_TEMPLATES: dict[str, dict[str, str]] = {
    "jobs": {
        "subject": "job opportunities",
        "example": (
            "🏗️ Construction Workers Needed – Canada\n"
            "🏠 Accommodation Provided + 💵 Weekly Pay\n"
            "👷 Site Labour | Carpentry | Electrical Helpers\n"
            "⚡ Limited Positions – Apply Soon!\n"
            "👉 Apply Now!"
        ),
        "requirements": (
            "- Structure: job title with location, benefits, job types, urgency, call to action\n"
            "- Job categories: farm, construction, hospitality, warehouse, driving\n"
            "- Benefits: accommodation, meals, training, good salary\n"
            "- Only describe realistic, honest offers"
        ),
        "comment_marker": "✅",
        "comment_example": "✅ Great chance to start a new career! Apply here 👇",
    },
    "travel": {
        "subject": "travel destinations",
        "example": (
            "🌍 Hidden gem alert: Lake Bled, Slovenia 🇸🇮\n"
            "Crystal water, a castle on the cliff and a church on an island ✨\n"
            "📸 Best view: sunrise from Ojstrica hill\n"
            "👉 Save this for your next trip!"
        ),
        "requirements": (
            "- Structure: hook with destination, highlight line, photo tip, call to action\n"
            "- Vary continents, seasons and budgets\n"
            "- Use travel emojis (🌍, ✈️, 🏝️, 📸, 🗺️)"
        ),
        "comment_marker": "🗺️",
        "comment_example": "🗺️ Who would you take with you on this trip? Tag them below 👇",
    },
    "fitness": {
        "subject": "fitness and healthy habits",
        "example": (
            "💪 5-minute morning routine that changed everything\n"
            "Squats, push-ups, plank, stretch. Repeat 3x 🔁\n"
            "🔥 Consistency beats intensity\n"
            "👉 Try it tomorrow and tell us how it went!"
        ),
        "requirements": (
            "- Structure: hook, short routine or tip, motivation line, call to action\n"
            "- Keep advice safe and beginner friendly\n"
            "- Use fitness emojis (💪, 🔥, 🏃, 🥗, 🧘)"
        ),
        "comment_marker": "🏆",
        "comment_example": "🏆 Day 1 starts today! Drop a 💪 if you're in",
    },
}

# Topics that use the generic numbered-list template
GENERIC_TOPICS = ("general", "business", "technology", "lifestyle")

TOPICS = tuple(TOPIC_TEMPLATES) + GENERIC_TOPICS


def resolve_topic(topic: str | None) -> str:
    key = (topic or "").strip().lower() or "general"
    if key not in TOPICS:
        raise GenerationError(f"Unknown topic '{topic}'. Use one of: {', '.join(TOPICS)}", status_code=400)
    return key


def call_gemini(api_key: str, parts: list[dict], *, temperature: float = 0.9, max_output_tokens: int = 2048,
                response_mime_type: str | None = None, failure_message: str = "Generation failed",
                empty_message: str = "Nothing was generated") -> str:
    """One generateContent call. Returns the first candidate's text."""
    if not api_key:
        raise GenerationError("API key is required", status_code=400)

    generation_config: dict[str, Any] = {
        "temperature": temperature,
        "topK": 1,
        "topP": 1,
        "maxOutputTokens": max_output_tokens,
    }
    if response_mime_type:
        generation_config["responseMimeType"] = response_mime_type

    try:
        resp = requests.post(
            f"{settings.gemini_base_url}/{settings.gemini_model}:generateContent",
            params={"key": api_key},
            json={"contents": [{"parts": parts}], "generationConfig": generation_config},
            headers={"Content-Type": "application/json"},
            timeout=settings.gemini_timeout_seconds,
        )
    except requests.RequestException as e:
        logger.error(f"Gemini request failed: {e}")
        raise GenerationError(failure_message) from e

    if not resp.ok:
        logger.error(f"Gemini API error (HTTP {resp.status_code}): {resp.text[:300]}")
        raise GenerationError(failure_message)

    try:
        data = resp.json()
    except ValueError as e:
        raise GenerationError(failure_message) from e

    candidates = data.get("candidates") if isinstance(data, dict) else None
    if not candidates:
        raise GenerationError(empty_message)
    try:
        return candidates[0]["content"]["parts"][0]["text"]
    except (KeyError, IndexError, TypeError) as e:
        raise GenerationError(empty_message) from e


# --- Captions ---

def create_caption_prompt(platform: str, topic: str, post_type: str, caption_count: int,
                          generate_comments: bool = False, link_url: str | None = None,
                          specific_caption: str | None = None, structured: bool = False) -> str:
    platform_style = (
        "Facebook (more formal, with emojis and hashtags)"
        if platform == "facebook"
        else "Threads (casual, conversational, trendy)"
    )
    with_comments = generate_comments and post_type != "group post"

    if specific_caption:
        link_line = f"5. Include this link naturally in the comment: {link_url}\n" if link_url else ""
        return (
            f"Generate 1 engaging comment for this {platform} caption:\n\n"
            f"\"{specific_caption}\"\n\n"
            f"Platform: {platform}\nTopic: {topic}\nPost type: {post_type}\n\n"
            "Requirements:\n"
            "1. Generate exactly 1 relevant comment\n"
            "2. Comment should be engaging and encourage interaction\n"
            f"3. Match the {platform} platform style and tone\n"
            "4. Be supportive and add value to the conversation\n"
            f"{link_line}\n"
            "Format your response as:\nCOMMENT: [your comment here]"
        )

    template = TOPIC_TEMPLATES.get(topic)
    if template:
        link_line = f"\n- End each caption with this link: {link_url}" if link_url else ""
        comment_lines = ""
        if with_comments:
            comment_lines = (
                f"\n- After each caption add one comment on its own line starting with "
                f"\"{template['comment_marker']}\", like:\n{template['comment_example']}"
            )
        body = (
            f"Generate {caption_count} {platform} captions about {template['subject']} in this EXACT format:\n\n"
            f"{template['example']}\n\n"
            f"Requirements:\n{template['requirements']}{link_line}{comment_lines}\n"
            "- Separate captions with one blank line\n"
        )
    else:
        link_line = f"\n- Include this link naturally in each caption: {link_url}" if link_url else ""
        comment_req = "\n- Generate 1 relevant comment for each caption" if with_comments else ""
        slots = []
        for n in range(1, caption_count + 1):
            slot = f"{n}. [Caption {n}]"
            if with_comments:
                slot += f"\n**COMMENT {n}:** [Comment for caption {n}]"
            slots.append(slot)
        body = (
            f"Generate {caption_count} engaging {platform} captions about \"{topic}\" for a {post_type}.\n\n"
            f"Platform style: {platform_style}\nTopic: {topic}\nPost type: {post_type}\n\n"
            "Requirements:\n"
            f"1. Generate exactly {caption_count} unique captions\n"
            "2. Each caption should be engaging and relevant to the topic\n"
            f"3. Match the {platform} platform style and tone\n"
            f"4. Consider the post type ({post_type}) when crafting content{link_line}{comment_req}\n\n"
            "Format your response as follows:\n**CAPTIONS:**\n" + "\n\n".join(slots) + "\n"
        )

    if structured:
        shape = '{"captions": ["..."], "comments": ["..."]}' if with_comments else '{"captions": ["..."]}'
        body += (
            f"\nReturn ONLY a JSON object shaped like {shape} with exactly {caption_count} captions"
            + (", where comments[i] belongs to captions[i]." if with_comments else ".")
        )
    return body


def _comment_marker_for(topic: str | None) -> str | None:
    template = TOPIC_TEMPLATES.get((topic or "").lower())
    return template["comment_marker"] if template else None


def _split_captions_and_comments(text: str, comment_marker: str | None) -> tuple[list[str], list[str]]:
    captions: list[str] = []
    comments: list[str] = []

    for block in re.split(r"\n\s*\n", text.strip()):
        caption_lines: list[str] = []
        comment_lines: list[str] = []
        in_comment = False

        def flush():
            if caption_lines:
                captions.append("\n".join(caption_lines).strip())
            if comment_lines:
                comments.append("\n".join(comment_lines).strip())
            caption_lines.clear()
            comment_lines.clear()

        for raw in block.splitlines():
            line = raw.strip()
            if not line or HEADER_RE.match(line):
                continue

            numbered_comment = NUMBERED_COMMENT_RE.match(line)
            if numbered_comment or (comment_marker and line.startswith(comment_marker)):
                if comment_lines:
                    comments.append("\n".join(comment_lines).strip())
                    comment_lines.clear()
                in_comment = True
                comment_lines.append(numbered_comment.group(2).strip() if numbered_comment else line)
                continue

            numbered = NUMBERED_RE.match(line)
            if numbered:
                flush()
                in_comment = False
                caption_lines.append(numbered.group(1))
                continue

            (comment_lines if in_comment else caption_lines).append(line)

        flush()

    return [c for c in captions if c], [c for c in comments if c]


def _align_comments(captions: list[str], comments: list[str]) -> list[str]:
    """comment N belongs to caption N; the last comment repeats to fill gaps."""
    if not captions:
        return []
    if not comments:
        return [DEFAULT_COMMENT] * len(captions)
    aligned = comments[:len(captions)]
    while len(aligned) < len(captions):
        aligned.append(aligned[-1])
    return aligned


def _shape_caption_result(captions: list[str], comments: list[str], post_type: str,
                          count: int | None, generate_comments: bool) -> dict:
    if count:
        captions = captions[:count]
    result: dict[str, Any] = {"captions": captions}
    if generate_comments and post_type != "group post":
        result["comments"] = _align_comments(captions, comments)
    return result


def parse_structured_captions(text: str) -> tuple[list[str], list[str]] | None:
    """Reads the JSON answer format. Returns None when the model ignored it."""
    cleaned = text.strip()
    if cleaned.startswith("```"):
        cleaned = re.sub(r"^```(?:json)?\s*|\s*```$", "", cleaned)
    try:
        data = json.loads(cleaned)
    except ValueError:
        return None
    if not isinstance(data, dict) or not isinstance(data.get("captions"), list):
        return None

    captions = [c.strip() for c in data["captions"] if isinstance(c, str) and c.strip()]
    if not captions:
        return None
    raw_comments = data.get("comments") if isinstance(data.get("comments"), list) else []
    comments = [c.strip() for c in raw_comments if isinstance(c, str) and c.strip()]
    return captions, comments


def parse_generated_content(text: str, post_type: str = "page post", *, count: int | None = None,
                            generate_comments: bool = False, topic: str | None = None,
                            specific_comment: bool = False) -> dict:
    """
    Heuristic parser for freeform caption answers.

    Preference order: template comment markers, numbered lines, blank-line
    blocks, then the whole text as a single caption. A non-empty answer
    always yields at least one caption.
    """
    if specific_comment:
        match = SINGLE_COMMENT_RE.search(text)
        return {"comments": [match.group(1).strip()] if match else []}

    captions, comments = _split_captions_and_comments(text, _comment_marker_for(topic))
    if not captions and text.strip():
        captions = [text.strip()]

    return _shape_caption_result(captions, comments, post_type, count, generate_comments)


def generate_captions(*, api_key: str, platform: str = "facebook", topic: str | None = None,
                      post_type: str = "page post", caption_count: int = 3, generate_comments: bool = False,
                      include_link: bool = False, link_url: str | None = None,
                      specific_caption: str | None = None) -> dict:
    if not api_key:
        raise GenerationError("API key is required", status_code=400)
    if platform not in PLATFORMS:
        raise GenerationError(f"Unknown platform '{platform}'. Use one of: {', '.join(PLATFORMS)}", status_code=400)
    if post_type not in CAPTION_POST_TYPES:
        raise GenerationError(f"Unknown post type '{post_type}'. Use one of: {', '.join(CAPTION_POST_TYPES)}", status_code=400)
    topic_key = resolve_topic(topic)

    link = link_url if include_link and link_url else None
    specific = bool(specific_caption and generate_comments)
    structured = settings.gemini_structured_output and not specific

    prompt = create_caption_prompt(
        platform, topic_key, post_type, caption_count,
        generate_comments=generate_comments,
        link_url=link,
        specific_caption=specific_caption if specific else None,
        structured=structured,
    )
    text = call_gemini(
        api_key, [{"text": prompt}],
        response_mime_type="application/json" if structured else None,
        failure_message="Failed to generate captions",
        empty_message="No captions generated",
    )

    if structured:
        parsed = parse_structured_captions(text)
        if parsed:
            captions, comments = parsed
            return _shape_caption_result(captions, comments, post_type, caption_count, generate_comments)
        logger.info("Structured caption answer was not valid JSON, using heuristic parser")

    return parse_generated_content(
        text, post_type,
        count=caption_count,
        generate_comments=generate_comments,
        topic=topic_key,
        specific_comment=specific,
    )


# --- Image / video prompts ---

def create_media_prompt(prompt_type: str, prompt_count: int, style: str | None, environment: str | None,
                        theme: str | None, mood: str | None, additional_details: str | None = None) -> str:
    if prompt_type == "video":
        intro = "You are an expert at creating detailed, high-quality prompts for AI video generation models like Google Veo3."
        noun = "video generation prompts"
        rules = [
            "Be detailed and specific for high-quality video generation",
            "Include camera movement descriptions (pan, zoom, dolly, static shot, tracking)",
            "Specify video quality and style (cinematic, documentary, artistic, commercial)",
            "Include lighting and mood descriptions",
            "Describe movements, actions, and scene dynamics",
            "Include timing and pacing suggestions",
        ]
    else:
        intro = ("You are an expert at creating detailed, high-quality prompts for AI image generation "
                 "models like Midjourney, DALL-E, and Stable Diffusion.")
        noun = "image generation prompts"
        rules = [
            "Be detailed and specific for high-quality image generation",
            "Include professional photography terms (lighting, composition, camera settings)",
            "Specify image quality keywords (4K, ultra-detailed, photorealistic, etc.)",
            "Include artistic style references when appropriate",
            "Include relevant details about composition, lighting, and atmosphere",
        ]

    prompt = (
        f"{intro}\n\nCreate {prompt_count} unique and detailed {noun} with these general specifications:\n\n"
        f"Style: {style or 'any'}\nEnvironment/Setting: {environment or 'any'}\n"
        f"Visual Theme: {theme or 'any'}\nMood/Tone: {mood or 'any'}"
    )
    if additional_details:
        prompt += f"\nAdditional Details: {additional_details}"
    prompt += "\n\nEach prompt should:\n" + "\n".join(f"{i}. {r}" for i, r in enumerate(rules, 1))
    prompt += (
        f"\n\nReturn {prompt_count} separate prompts, each on a new line, without numbering or "
        "additional formatting. Each prompt should be complete and ready to use."
    )
    return prompt


def parse_prompts(text: str, count: int | None = None) -> list[str]:
    prompts = []
    for line in text.splitlines():
        line = line.strip()
        if not line:
            continue
        numbered = NUMBERED_RE.match(line)
        prompts.append(numbered.group(1).strip() if numbered else line)
    return prompts[:count] if count else prompts


def generate_prompts(*, api_key: str, prompt_type: str = "image", style: str | None = None,
                     environment: str | None = None, theme: str | None = None, mood: str | None = None,
                     prompt_count: int = 5, additional_details: str | None = None) -> list[str]:
    if not api_key:
        raise GenerationError("API key is required", status_code=400)
    if prompt_type not in PROMPT_TYPES:
        raise GenerationError("Prompt type must be 'image' or 'video'", status_code=400)

    prompt = create_media_prompt(prompt_type, prompt_count, style, environment, theme, mood, additional_details)
    text = call_gemini(
        api_key, [{"text": prompt}],
        failure_message="Failed to generate prompts. Please check your API key and try again.",
        empty_message="No prompts generated",
    )
    return parse_prompts(text, prompt_count)


# --- Text posts ---

def create_text_post_prompt(topic: str, platform: str, reference_link: str | None, count: int) -> str:
    link_line = f"\n- Include this reference link naturally in some posts: {reference_link}" if reference_link else ""
    slots = "\n\n".join(f"POST {n}:\n[Text post {n}]" for n in range(1, count + 1))
    return (
        f"Generate EXACTLY {count} engaging text posts about \"{topic}\" for {platform}.\n\n"
        "Requirements:\n"
        f"1. Generate exactly {count} unique text posts\n"
        "2. Each post should be engaging, informative, and relevant to the topic\n"
        f"3. Match the {platform} platform style and tone\n"
        "4. Posts should be standalone text content (no images/videos)\n"
        f"5. Use appropriate emojis and hashtags for {platform}\n"
        f"6. Vary the post styles (questions, tips, quotes, stories, facts){link_line}\n\n"
        f"Format your response as:\n{slots}\n\n"
        f"Make sure each post is unique, engaging, and appropriate for {platform}."
    )


def _clean_block(block: str) -> str:
    return "\n".join(line.strip() for line in block.splitlines() if line.strip()).strip()


def parse_text_posts(text: str) -> list[str]:
    """POST N: markers first, then numbered lines and blank-line blocks."""
    pieces = TEXT_POST_MARKER_RE.split(text)
    posts = [_clean_block(p) for p in pieces[1:]]
    posts = [p for p in posts if p]
    if posts:
        return posts

    current = ""
    for raw in text.splitlines():
        line = raw.strip()
        if not line:
            if current:
                posts.append(current.strip())
                current = ""
            continue
        numbered = NUMBERED_RE.match(line)
        if numbered:
            if current:
                posts.append(current.strip())
            current = numbered.group(1)
        elif current:
            current += "\n" + line
        else:
            current = line
    if current:
        posts.append(current.strip())
    return [p for p in posts if p]


def generate_text_posts(*, api_key: str, topic: str | None, platform: str | None,
                        reference_link: str | None = None, count: int = 5) -> list[str]:
    if not api_key:
        raise GenerationError("API key is required", status_code=400)
    if not topic or not platform:
        raise GenerationError("Topic and platform are required", status_code=400)

    text = call_gemini(
        api_key, [{"text": create_text_post_prompt(topic, platform, reference_link, count)}],
        failure_message="Failed to generate text posts",
        empty_message="No text posts generated",
    )
    return parse_text_posts(text)


# --- Auto caption for uploaded media ---

AUTO_CAPTION_PROMPTS = {
    ("image", False): (
        "Analyze this image and create a single engaging one-liner caption for Facebook posting.\n\n"
        "Requirements:\n- Keep it under 15 words\n- Make it engaging and social media friendly\n"
        "- Include relevant emojis\n- Be descriptive but concise\n"
        "- Focus on what makes the image interesting or appealing\n\n"
        "Return only the caption text, nothing else."
    ),
    ("video", False): (
        "Generate a single engaging one-liner caption for a video post on Facebook.\n\n"
        "Requirements:\n- Keep it under 15 words\n- Make it engaging and social media friendly\n"
        "- Include relevant emojis\n- Use action words that suggest movement or excitement\n"
        "- Be generic enough to work for most video content\n\n"
        "Return only the caption text, nothing else."
    ),
    ("image", True): (
        "Analyze this image and create a single engaging comment for Facebook posting.\n\n"
        "Requirements:\n- Keep it under 10 words\n- Make it conversational and friendly\n"
        "- Include relevant emojis\n- Be supportive or appreciative\n"
        "- Sound like a genuine friend's comment\n\n"
        "Return only the comment text, nothing else."
    ),
    ("video", True): (
        "Generate a single engaging comment for a video post on Facebook.\n\n"
        "Requirements:\n- Keep it under 10 words\n- Make it conversational and friendly\n"
        "- Include relevant emojis\n- Use encouraging or excited language\n"
        "- Be generic enough to work for most video content\n\n"
        "Return only the comment text, nothing else."
    ),
}


def fetch_image_base64(url: str) -> tuple[str, str]:
    """Returns (mime_type, base64 data) for a remote image."""
    try:
        resp = requests.get(url, timeout=settings.download_timeout_seconds)
    except requests.RequestException as e:
        raise GenerationError("Failed to process image") from e
    if not resp.ok:
        raise GenerationError("Failed to process image")
    mime_type = (resp.headers.get("Content-Type") or "image/jpeg").split(";")[0].strip()
    if not mime_type.startswith("image/"):
        mime_type = "image/jpeg"
    return mime_type, base64.b64encode(resp.content).decode("ascii")


def generate_auto_caption(*, api_key: str, media_url: str | None, media_type: str | None,
                          is_comment: bool = False) -> str:
    if not api_key:
        raise GenerationError("API key is required", status_code=400)
    if not media_url:
        raise GenerationError("Media URL is required", status_code=400)
    if media_type not in MEDIA_TYPES:
        raise GenerationError("Valid media type (image or video) is required", status_code=400)

    parts: list[dict] = [{"text": AUTO_CAPTION_PROMPTS[(media_type, bool(is_comment))]}]
    if media_type == "image":
        # Gemini cannot watch videos here, so only images are sent inline
        mime_type, data = fetch_image_base64(media_url)
        parts.append({"inline_data": {"mime_type": mime_type, "data": data}})

    text = call_gemini(
        api_key, parts,
        temperature=0.7 if media_type == "image" else 0.8,
        max_output_tokens=100,
        failure_message="Failed to analyze image" if media_type == "image" else "Failed to generate video caption",
        empty_message="No caption generated",
    )
    return text.strip().strip("\"'").strip()


def verify_api_key(api_key: str | None) -> bool:
    """Raises GenerationError(401) when Gemini refuses the key."""
    if not api_key:
        raise GenerationError("API key is required", status_code=400)
    try:
        call_gemini(
            api_key, [{"text": 'Hello, this is a test message. Please respond with "API key is working"'}],
            max_output_tokens=20,
            failure_message="Invalid API key or API error",
            empty_message="Unexpected API response",
        )
    except GenerationError as e:
        if e.message == "Invalid API key or API error":
            e.status_code = 401
        raise
    return True
