from __future__ import annotations

import argparse
import logging
import sys
from typing import Any, Dict, List, Optional

from .config import debug_enabled, load_variables, read_template
from .errors import WclipUserError
from .jsonic import dumps as jdumps
from .report import build_check_report
from .template import (
    RenderContext,
    format_ast_tree,
    parse,
    render_ast,
    tokenize,
    validate_variables,
)
from .template.serialize import ast_to_list, error_to_dict, token_to_dict
from .version import tool_version

logger = logging.getLogger("wclip")


def _build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="wclip",
        description="Web Clipper template tools (tokenize, parse, check, render)",
        add_help=True,
    )
    p.add_argument("-v", "--version", action="version", version=f"%(prog)s {tool_version()}")
    p.add_argument(
        "--verbose",
        action="store_true",
        help="отладочный лог в stderr (то же, что WCLIP_DEBUG=1)",
    )
    sub = p.add_subparsers(dest="cmd", required=True)

    def add_template(sp: argparse.ArgumentParser) -> None:
        sp.add_argument("template", metavar="FILE", help="файл шаблона или - для чтения из stdin")

    def add_vars(sp: argparse.ArgumentParser) -> None:
        sp.add_argument(
            "--vars",
            metavar="FILE",
            help="переменные страницы: YAML или JSON (по суффиксу .json)",
        )

    sp_tokenize = sub.add_parser("tokenize", help="JSON: токены и ошибки лексера")
    add_template(sp_tokenize)

    sp_parse = sub.add_parser("parse", help="JSON: AST и ошибки разбора")
    add_template(sp_parse)
    sp_parse.add_argument("--tree", action="store_true", help="вывести AST в виде дерева вместо JSON")

    sp_check = sub.add_parser("check", help="JSON-отчёт: ошибки разбора и предупреждения о переменных")
    add_template(sp_check)
    add_vars(sp_check)

    sp_render = sub.add_parser("render", help="Отрендеренный текст (не JSON)")
    add_template(sp_render)
    add_vars(sp_render)
    sp_render.add_argument("--url", default="", help="URL текущей страницы для фильтров")

    return p


def _setup_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose or debug_enabled() else logging.WARNING
    logger.setLevel(level)
    # Один обработчик, привязанный к текущему sys.stderr
    for old in list(logger.handlers):
        logger.removeHandler(old)
    h = logging.StreamHandler(sys.stderr)
    h.setFormatter(logging.Formatter("[%(levelname)s] %(message)s"))
    logger.addHandler(h)


def _load_vars(ns: argparse.Namespace) -> Dict[str, Any]:
    path = getattr(ns, "vars", None)
    if not path:
        return {}
    variables = load_variables(path)
    logger.debug(f"Loaded {len(variables)} variables from {path}")
    return variables


def _cmd_tokenize(ns: argparse.Namespace) -> int:
    result = tokenize(read_template(ns.template))
    data = {
        "tokens": [token_to_dict(t) for t in result.tokens],
        "errors": [error_to_dict(e) for e in result.errors],
    }
    sys.stdout.write(jdumps(data))
    return 0


def _cmd_parse(ns: argparse.Namespace) -> int:
    result = parse(read_template(ns.template))
    if ns.tree:
        sys.stdout.write(format_ast_tree(result.ast) + "\n")
        for error in result.errors:
            sys.stderr.write(f"{error}\n")
        return 0
    data = {
        "ast": ast_to_list(result.ast),
        "errors": [error_to_dict(e) for e in result.errors],
    }
    sys.stdout.write(jdumps(data))
    return 0


def _cmd_check(ns: argparse.Namespace) -> int:
    text = read_template(ns.template)
    variables = _load_vars(ns)

    result = parse(text)
    warnings = validate_variables(result.ast, known_variables=_known_names(variables))
    report = build_check_report(result.errors, warnings)

    sys.stdout.write(jdumps(report.model_dump(mode="json")))
    return 0 if report.ok else 1


def _cmd_render(ns: argparse.Namespace) -> int:
    text = read_template(ns.template)
    variables = _load_vars(ns)

    parsed = parse(text)
    if parsed.errors:
        # Шаблон с ошибками разбора не рендерится
        for error in parsed.errors:
            logger.warning(str(error))
        return 1

    context = RenderContext(variables=variables, current_url=ns.url)
    result = render_ast(parsed.ast, context)
    for error in result.errors:
        logger.warning(str(error))

    sys.stdout.write(result.output)
    return 0


def _known_names(variables: Dict[str, Any]) -> List[str]:
    """Имена из файла переменных; ключи вида {{name}} разворачиваются."""
    names = []
    for key in variables:
        if key.startswith("{{") and key.endswith("}}"):
            key = key[2:-2].strip()
        names.append(key)
    return names


_COMMANDS = {
    "tokenize": _cmd_tokenize,
    "parse": _cmd_parse,
    "check": _cmd_check,
    "render": _cmd_render,
}


def main(argv: Optional[list[str]] = None) -> int:
    ns = _build_parser().parse_args(argv)
    _setup_logging(bool(ns.verbose))

    try:
        return _COMMANDS[ns.cmd](ns)
    except WclipUserError as e:
        sys.stderr.write(f"Error: {str(e).rstrip()}\n")
        return 2


if __name__ == "__main__":
    raise SystemExit(main())
