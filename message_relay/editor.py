"""Open a source file at a given line in the user's editor.

Backs the /open-stack-frame endpoint: a debugger front-end posts
{file, lineNumber} and the file is opened in whatever editor
REACT_EDITOR, VISUAL or EDITOR names.
"""

import asyncio
import logging
import os
import shlex
from pathlib import Path

logger = logging.getLogger("relay.editor")

# Editors that take "<file>:<line>" after a -g flag
_VSCODE_FAMILY = {"code", "code-insiders", "codium", "vscodium", "cursor", "windsurf"}
# Editors that take "+<line> <file>"
_PLUS_LINE_FAMILY = {"vim", "nvim", "vi", "gvim", "mvim", "emacs", "emacsclient", "nano", "joe", "micro", "kak"}
# Editors that take "<file>:<line>"
_COLON_FAMILY = {"subl", "sublime_text", "atom", "zed"}
# JetBrains launchers take "--line <line> <file>"
_JETBRAINS_FAMILY = {"idea", "webstorm", "pycharm", "phpstorm", "goland", "clion", "rubymine", "appcode", "studio"}


def guess_editor() -> list[str] | None:
    """Editor command line from the environment, or None if none is set."""
    for var in ("REACT_EDITOR", "VISUAL", "EDITOR"):
        value = os.environ.get(var, "").strip()
        if value:
            return shlex.split(value)
    return None


def find_workspace(watch_folders, file_name: str) -> str | None:
    """First watch folder containing *file_name*."""
    path = Path(file_name).resolve()
    for folder in watch_folders:
        root = Path(folder).resolve()
        if path == root or root in path.parents:
            return str(root)
    return None


def editor_arguments(editor: str, file_name: str, line_number: int, workspace: str | None = None) -> list[str]:
    name = Path(editor).name.lower()
    if name.endswith(".exe"):
        name = name[:-4]

    if name in _VSCODE_FAMILY:
        args = [workspace] if workspace else []
        return args + ["-g", f"{file_name}:{line_number}"]
    if name in _PLUS_LINE_FAMILY:
        return [f"+{line_number}", file_name]
    if name in _COLON_FAMILY:
        return [f"{file_name}:{line_number}"]
    if name in _JETBRAINS_FAMILY:
        return ["--line", str(line_number), file_name]
    if name == "notepad++":
        return [f"-n{line_number}", file_name]
    return [file_name]


async def launch_editor(file_name: str, line_number, watch_folders=()) -> bool:
    """Open *file_name* at *line_number*. Returns False if nothing was launched."""
    if not os.path.isfile(file_name):
        logger.warning(f"Cannot open {file_name!r} in editor: file does not exist")
        return False
    if isinstance(line_number, bool) or not isinstance(line_number, int) or line_number < 1:
        logger.warning(f"Cannot open {file_name!r} in editor: invalid line number {line_number!r}")
        return False

    editor = guess_editor()
    if not editor:
        logger.warning(
            "No editor configured. Set REACT_EDITOR, VISUAL or EDITOR "
            f"to open {file_name}:{line_number} automatically."
        )
        return False

    workspace = find_workspace(watch_folders, file_name)
    cmd = editor + editor_arguments(editor[0], file_name, line_number, workspace)
    try:
        proc = await asyncio.create_subprocess_exec(
            *cmd,
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.DEVNULL,
            stderr=asyncio.subprocess.DEVNULL,
            start_new_session=True,
        )
    except OSError as e:
        logger.error(f"Failed to launch editor {editor[0]!r}: {e}")
        return False

    logger.info(f"Opened {file_name}:{line_number} in {editor[0]} (pid={proc.pid})")
    return True
