"""storyctx command line - Subcommands over an offline ContextEngine."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, Field, TypeAdapter, ValidationError

from .complexity import ComplexityTier, GenerationTask
from .config import load_engine_config
from .context import SelectionCriteria, StoryPhase
from .engine import ContextEngine
from .errors import ConfigError


class LayerSpec(BaseModel):
    """One layer entry of a layers JSON file."""

    kind: str
    text: str
    importance: int = 5
    tags: list[str] = Field(default_factory=list)
    character_ids: list[str] = Field(default_factory=list)
    story_beat_id: Optional[str] = None
    quest_id: Optional[str] = None
    permanent: bool = False


_LAYERS = TypeAdapter(list[LayerSpec])


def load_layers(path: Path) -> list[LayerSpec]:
    """Parse and validate a layers JSON file (a list of layer objects)."""
    return _LAYERS.validate_json(path.read_bytes())


def cmd_classify(args) -> int:
    """Classify a task and print its complexity profile and compute tier."""
    engine = ContextEngine(load_engine_config(Path.cwd()))
    task = GenerationTask(
        type=args.type,
        prompt=args.prompt,
        context=args.context,
        complexity=ComplexityTier(args.complexity) if args.complexity else None,
    )
    result = engine.classify(task)
    out = {
        "complexity": result.profile.tier.value,
        "compute_tier": result.compute_tier.value,
        "estimated_tokens": result.profile.estimated_tokens,
        "requires_creativity": result.profile.requires_creativity,
        "reasoning_required": result.profile.reasoning_required,
        "context_dependency": result.profile.context_dependency.value,
        "confidence": result.confidence,
        "reason": result.reason,
        "source": result.source,
    }
    print(json.dumps(out, indent=2))
    return 0


def cmd_select(args) -> int:
    """Load layers from JSON and run one offline selection (no generation provider)."""
    try:
        layers = load_layers(Path(args.layers))
    except OSError as e:
        print(f"[storyctx] Cannot read {args.layers}: {e}", file=sys.stderr)
        return 1
    except ValidationError as e:
        print(f"[storyctx] Invalid layers file {args.layers}:\n{e}", file=sys.stderr)
        return 1

    engine = ContextEngine(load_engine_config(Path.cwd()))
    for spec in layers:
        engine.add_layer(
            args.campaign,
            spec.kind,
            spec.text,
            spec.importance,
            tags=spec.tags,
            character_ids=spec.character_ids,
            story_beat_id=spec.story_beat_id,
            quest_id=spec.quest_id,
            permanent=spec.permanent,
        )

    criteria = SelectionCriteria(
        task_type=args.task,
        max_tokens=args.max_tokens,
        current_situation=args.situation or "",
        character_ids=tuple(args.character or ()),
        story_phase=StoryPhase(args.phase),
    )
    result = asyncio.run(engine.select_optimal_context(args.campaign, criteria))

    if args.json:
        print(
            json.dumps(
                {
                    "selected_text": result.selected_text,
                    "reasoning": result.reasoning,
                    "token_usage": result.token_usage,
                    "effectiveness_score": result.effectiveness_score,
                    "selected_layers": [layer.id for layer in result.selected_layers],
                    "tier_used": result.tier_used,
                    "compression_level": result.compression_level.value,
                },
                indent=2,
            )
        )
    else:
        print(result.selected_text)
        print(
            f"[storyctx] layers={len(result.selected_layers)} tokens={result.token_usage} "
            f"effectiveness={result.effectiveness_score:.2f} tier={result.tier_used} "
            f"compression={result.compression_level.value}",
            file=sys.stderr,
        )
    return 0


def cmd_config(args) -> int:
    """Print the effective configuration as environment variables."""
    config = load_engine_config(Path(args.path))
    source = config.source or "defaults"
    print(f"# storyctx config: {source}")
    for key, value in sorted(config.to_env_vars().items()):
        print(f"{key}={value}")
    return 0


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="storyctx", description="storyctx context engine CLI")
    p.add_argument("-v", "--verbose", action="store_true", help="Enable info logging")
    sub = p.add_subparsers(dest="cmd", required=True)

    sc = sub.add_parser("classify", help="Classify a task into a complexity and compute tier")
    sc.add_argument("--type", required=True, help="Task type (e.g. story_response)")
    sc.add_argument("--prompt", required=True, help="Task prompt")
    sc.add_argument("--context", default=None, help="Additional context text")
    sc.add_argument(
        "--complexity",
        choices=[t.value for t in ComplexityTier],
        default=None,
        help="Explicit complexity override",
    )
    sc.set_defaults(func=cmd_classify)

    ss = sub.add_parser("select", help="Select context from a layers JSON file")
    ss.add_argument("layers", help="Path to a JSON list of layers")
    ss.add_argument("--task", required=True, help="Task type (e.g. story_progression)")
    ss.add_argument(
        "--phase",
        choices=[phase.value for phase in StoryPhase],
        default=StoryPhase.DEVELOPMENT.value,
        help="Story phase (default: development)",
    )
    ss.add_argument("--max-tokens", type=int, required=True, help="Token budget")
    ss.add_argument(
        "--character", action="append", help="Character id involved (repeatable)"
    )
    ss.add_argument("--situation", default=None, help="Current situation text")
    ss.add_argument("--campaign", default="cli", help="Campaign id (default: cli)")
    ss.add_argument("--json", action="store_true", help="Print the result as JSON")
    ss.set_defaults(func=cmd_select)

    sg = sub.add_parser("config", help="Print effective configuration as env vars")
    sg.add_argument("path", nargs="?", default=".", help="Directory to search from")
    sg.set_defaults(func=cmd_config)

    return p


def main(argv: Optional[list[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.INFO if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )
    try:
        return args.func(args)
    except ConfigError as e:
        print(f"[storyctx] {e}", file=sys.stderr)
        return 2


if __name__ == "__main__":
    sys.exit(main())
