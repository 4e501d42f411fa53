from hemirad.parser.scene_parser import (
    ParsedScene,
    SceneParseError,
    format_scene_text,
    load_scene,
    parse_scene_text,
)

__all__ = [
    "ParsedScene",
    "SceneParseError",
    "format_scene_text",
    "load_scene",
    "parse_scene_text",
]
