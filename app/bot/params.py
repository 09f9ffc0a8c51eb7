"""
@-parameters inside a prompt: "@16:9 @4K @s".
Recognized tokens are removed from the prompt; anything else stays verbatim.
"""
import html
from dataclasses import dataclass

from app.services.aspect_ratio import SUPPORTED_RATIOS

SUPPORTED_QUALITIES = {"1K": "1K", "2K": "2K", "4K": "4K"}


@dataclass
class ParsedParams:
    prompt: str = ""
    aspect_ratio: str = ""  # "" = not given
    quality: str = ""  # "" = not given
    single_image_from_group: bool = False  # @s: use only the replied photo, not the whole album
    ratio_error: str = ""
    quality_error: str = ""

    @property
    def has_errors(self) -> bool:
        return bool(self.ratio_error or self.quality_error)


def parse_text_params(text: str) -> ParsedParams:
    params = ParsedParams()
    prompt_parts: list[str] = []

    for part in (text or "").split():
        if not part.startswith("@"):
            prompt_parts.append(part)
            continue

        value = part[1:]
        if value.lower() == "s":
            params.single_image_from_group = True
        elif value.upper() in SUPPORTED_QUALITIES:
            params.quality = SUPPORTED_QUALITIES[value.upper()]
        elif value in SUPPORTED_RATIOS:
            params.aspect_ratio = value
        elif len(value) > 1 and value.upper().endswith("K"):
            params.quality_error = value
        elif ":" in value:
            params.ratio_error = value
        else:
            # @mentions and the like belong to the prompt
            prompt_parts.append(part)

    params.prompt = " ".join(prompt_parts)
    return params


def params_error_text(params: ParsedParams) -> str:
    ratios = " ".join(f"<code>@{ratio}</code>" for ratio in SUPPORTED_RATIOS)
    lines = ["❌ <b>Invalid parameters</b>", ""]
    if params.ratio_error:
        lines.append(f"Invalid ratio: <code>{html.escape(params.ratio_error)}</code>")
        lines.append(f"Supported ratios: {ratios}")
        lines.append("")
    if params.quality_error:
        lines.append(f"Invalid quality: <code>{html.escape(params.quality_error)}</code>")
        lines.append("Supported qualities: <code>@1K</code> <code>@2K</code> <code>@4K</code>")
        lines.append("")
    lines.append("<b>Example:</b>")
    lines.append("<code>translate this comic @16:9 @4K</code>")
    return "\n".join(lines)
