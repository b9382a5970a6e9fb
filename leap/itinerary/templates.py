"""
Category templates: prompt copy and fallback itineraries, loaded from templates.yaml.

Adding a category only needs a new GoalCategory member and a YAML entry.
"""
import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import yaml

from leap.exceptions import ConfigError
from leap.models import GoalCategory

TEMPLATES_PATH = Path(__file__).parent / "templates.yaml"

REQUIRED_KEYS = ("role", "subject_label", "guidance", "example", "boarding_pass",
                 "fallback", "fallback_boarding_pass")


def render(template: str, variables: Dict[str, Any]) -> str:
    """Replace ``{name}`` placeholders; other braces are left untouched."""
    for key, value in variables.items():
        template = template.replace(f"{{{key}}}", str(value))
    return template


@dataclass(frozen=True)
class CategoryTemplate:
    category: GoalCategory
    role: str
    subject_label: str
    guidance: Tuple[str, ...]
    example: Dict[str, str]
    boarding_pass: str
    fallback: Tuple[Tuple[str, str, str], ...]
    fallback_boarding_pass: str

    def build_prompt(
        self,
        destination: str,
        timeline: str,
        user_story: str,
        challenge_count: int = 7,
    ) -> str:
        variables = {"destination": destination, "timeline": timeline, "user_story": user_story}
        example = {
            "challenges": [{k: render(v, variables) for k, v in self.example.items()}],
            "boardingPass": render(self.boarding_pass, variables),
        }
        guidance = "\n".join(f"- {render(line, variables)}" for line in self.guidance)

        return (
            f"{render(self.role, variables)}\n"
            f"\n"
            f"{self.subject_label}: {destination}\n"
            f"TIMELINE: {timeline}\n"
            f"HER STORY: \"{user_story}\"\n"
            f"\n"
            f"Generate {challenge_count} micro-actions that follow these rules:\n"
            f"{guidance}\n"
            f"\n"
            f"Return ONLY valid JSON (no markdown, no backticks) with exactly "
            f"{challenge_count} items in \"challenges\", each with string fields "
            f"\"title\", \"description\" and \"estimatedTime\", plus a string \"boardingPass\":\n"
            f"{json.dumps(example, indent=2, ensure_ascii=False)}\n"
        )

    def fallback_steps(self, destination: str, timeline: str) -> List[Tuple[str, str, str]]:
        variables = {"destination": destination, "timeline": timeline}
        return [
            (render(title, variables), render(description, variables), render(time, variables))
            for title, description, time in self.fallback
        ]

    def fallback_encouragement(self, destination: str, timeline: str) -> str:
        return render(self.fallback_boarding_pass, {"destination": destination, "timeline": timeline})


def _parse_entry(category: GoalCategory, entry: Dict[str, Any]) -> CategoryTemplate:
    missing = [k for k in REQUIRED_KEYS if k not in entry]
    if missing:
        raise ConfigError(
            f"Template '{category.value}' is missing keys: {', '.join(missing)}",
            config_path=str(TEMPLATES_PATH)
        )
    steps = []
    for step in entry["fallback"]:
        if not isinstance(step, (list, tuple)) or len(step) != 3:
            raise ConfigError(
                f"Template '{category.value}' fallback steps must be [title, description, time]",
                config_path=str(TEMPLATES_PATH)
            )
        steps.append(tuple(str(x) for x in step))
    if not steps:
        raise ConfigError(f"Template '{category.value}' has no fallback steps",
                          config_path=str(TEMPLATES_PATH))

    return CategoryTemplate(
        category=category,
        role=str(entry["role"]).strip(),
        subject_label=str(entry["subject_label"]),
        guidance=tuple(str(x) for x in entry["guidance"]),
        example={k: str(v) for k, v in entry["example"].items()},
        boarding_pass=str(entry["boarding_pass"]),
        fallback=tuple(steps),
        fallback_boarding_pass=str(entry["fallback_boarding_pass"]),
    )


def load_templates(path: Optional[Path] = None) -> Dict[GoalCategory, CategoryTemplate]:
    """Load every category template; a category without copy is a ConfigError."""
    source = path or TEMPLATES_PATH
    try:
        with open(source, "r", encoding="utf-8") as f:
            raw = yaml.safe_load(f) or {}
    except (yaml.YAMLError, OSError) as e:
        raise ConfigError(f"Failed to load itinerary templates: {e}", config_path=str(source))

    templates = {}
    for category in GoalCategory:
        entry = raw.get(category.value)
        if not isinstance(entry, dict):
            raise ConfigError(f"No template for category '{category.value}'", config_path=str(source))
        templates[category] = _parse_entry(category, entry)
    return templates
