"""
Argument normalizer: turns the variadic call shape into (env, argv, options).

    run([env], command, [arg1, ...], [options], **options)

The env and options mappings are optional. The command may be a variable
number of strings or a single list of strings. argv[0] of the result is
always an (exec_path, display_name) tuple.
"""

from __future__ import annotations

import re
from collections.abc import Mapping
from typing import Any, Dict, List, Optional, Tuple

from .configuration import get_settings
from .errors import InvalidArgument
from .redirection import flatten_spawn_options, normalize_redirect_file_options

# single string with these characters means run it through the shell
SHELL_METACHARS = re.compile(r"[ |>]")


def _is_pair(obj: Any) -> bool:
    # a two-item list names the pair as well: ["echo", "fuuu"], "hello"
    return isinstance(obj, (tuple, list)) and len(obj) == 2


def adjust_argv(args: List[Any], shell: Optional[str] = None) -> List[Any]:
    """Convert the supported command variations into a standard argv.

    'true'                    => [('true', 'true')]
    'echo', 'hello', 'world'  => [('echo', 'echo'), 'hello', 'world']
    'echo hello world'        => [('/bin/sh', '/bin/sh'), '-c', 'echo hello world']
    ('echo', 'fuuu'), 'hello' => [('echo', 'fuuu'), 'hello']
    ['echo', 'fuuu'], 'hello' => [('echo', 'fuuu'), 'hello']

    Returns a [(cmdname, argv0), argv1, ...] list.
    """
    if not args:
        raise InvalidArgument("no command given")
    first = args[0]
    if len(args) == 1 and isinstance(first, str) and SHELL_METACHARS.search(first):
        shell = shell or get_settings().shell
        return [(shell, shell), "-c", first]
    if not _is_pair(first):
        return [(first, first), *args[1:]]
    return [tuple(first), *args[1:]]


def extract_spawn_arguments(*args: Any, **kwargs: Any) -> Tuple[Dict[str, Optional[str]], List[Any], Dict[Any, Any]]:
    """Turn the supported call signatures into a simple (env, argv, options) tuple.

    Keyword arguments are merged over a trailing options mapping. All
    three elements are guaranteed non-None; empty dicts stand in for
    missing env and options.
    """
    args_list = list(args)

    # pop the options mapping off the end if it's there
    if args_list and isinstance(args_list[-1], Mapping):
        options: Dict[Any, Any] = dict(args_list.pop())
    else:
        options = {}
    options.update(kwargs)
    flatten_spawn_options(options)
    normalize_redirect_file_options(options)

    # shift the environ mapping off the front if it's there and account for
    # a possible "env" key in options
    if args_list and isinstance(args_list[0], Mapping):
        env: Dict[str, Optional[str]] = dict(args_list.pop(0))
    else:
        env = {}
    if "env" in options:
        env.update(options.pop("env") or {})

    # a single list is the whole command: ['a', 'b'] is the same as 'a', 'b'
    if len(args_list) == 1 and isinstance(args_list[0], list):
        args_list = list(args_list[0])

    argv = adjust_argv(args_list)
    return env, argv, options
