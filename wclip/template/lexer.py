"""
Лексический анализатор шаблонов Web Clipper.

Превращает исходный текст шаблона в плоский поток типизированных токенов.
Работает как конечный автомат с тремя режимами:
- обычный текст
- внутри переменной {{ ... }}
- внутри тега {% ... %}

Лексер никогда не выбрасывает исключений: при некорректном вводе он
накапливает ошибки и продолжает сканирование, чтобы остаток шаблона
тоже был токенизирован.
"""

from __future__ import annotations

import enum
import logging
from typing import Dict, List, Optional

from .tokens import Token, TokenType, TokenizerError, TokenizerResult

logger = logging.getLogger(__name__)


class LexerMode(enum.Enum):
    """Режимы сканирования."""
    TEXT = "text"
    VARIABLE = "variable"
    TAG = "tag"


# Ключевые слова (сравниваются без учёта регистра)
KEYWORDS: Dict[str, TokenType] = {
    "if": TokenType.KEYWORD_IF,
    "elseif": TokenType.KEYWORD_ELSEIF,
    "else": TokenType.KEYWORD_ELSE,
    "endif": TokenType.KEYWORD_ENDIF,
    "for": TokenType.KEYWORD_FOR,
    "in": TokenType.KEYWORD_IN,
    "endfor": TokenType.KEYWORD_ENDFOR,
    "set": TokenType.KEYWORD_SET,
    "and": TokenType.OP_AND,
    "or": TokenType.OP_OR,
    "not": TokenType.OP_NOT,
    "contains": TokenType.OP_CONTAINS,
    "true": TokenType.BOOLEAN,
    "false": TokenType.BOOLEAN,
    "null": TokenType.NULL,
}

# Двухсимвольные операторы проверяются раньше односимвольных
_MULTI_CHAR_OPERATORS = [
    ("==", TokenType.OP_EQ),
    ("!=", TokenType.OP_NEQ),
    (">=", TokenType.OP_GTE),
    ("<=", TokenType.OP_LTE),
    ("&&", TokenType.OP_AND),
    ("||", TokenType.OP_OR),
    ("??", TokenType.OP_NULLISH),
    ("=>", TokenType.ARROW),
]

_SINGLE_CHAR_TOKENS: Dict[str, TokenType] = {
    ">": TokenType.OP_GT,
    "<": TokenType.OP_LT,
    "!": TokenType.OP_NOT,
    "=": TokenType.OP_ASSIGN,
    "|": TokenType.PIPE,
    "(": TokenType.LPAREN,
    ")": TokenType.RPAREN,
    "[": TokenType.LBRACKET,
    "]": TokenType.RBRACKET,
    ":": TokenType.COLON,
    ",": TokenType.COMMA,
    ".": TokenType.DOT,
    "*": TokenType.STAR,
    "/": TokenType.SLASH,
    "{": TokenType.LBRACE,
    "}": TokenType.RBRACE,
    "$": TokenType.DOLLAR,
}

_STRING_ESCAPES = {
    "n": "\n",
    "t": "\t",
    "r": "\r",
    "\\": "\\",
    '"': '"',
    "'": "'",
}

# В экранированных аргументах дополнительно допускаются \, и \|
_ARGUMENT_ESCAPES = dict(_STRING_ESCAPES, **{",": ",", "|": "|"})

# Символы после одиночной '}' внутри {{ }}, при которых это обычная скобка
_VALID_AFTER_BRACE = ("|", ",", ")", "]", " ", "\t", "\n", "\r")

_SELECTOR_PREFIXES = ("selector", "selectorHtml")


def _is_whitespace(char: str) -> bool:
    return char in (" ", "\t", "\n", "\r")


def _is_digit(char: str) -> bool:
    return "0" <= char <= "9" if char else False


def _is_identifier_start(char: str) -> bool:
    # '@' допускается для schema:@Type
    return ("a" <= char <= "z") or ("A" <= char <= "Z") or char in ("_", "@")


def _is_identifier_char(char: str) -> bool:
    # '-' для kebab-case, '.' для вложенных свойств вида author.name
    return _is_identifier_start(char) or _is_digit(char) or char in ("-", ".")


class TemplateLexer:
    """
    Лексер шаблонов с одним курсором.

    Экземпляр одноразовый: tokenize() сканирует переданный в конструктор
    текст от начала до конца и возвращает TokenizerResult.
    """

    def __init__(self, text: str):
        self.text = text
        self.length = len(text)
        self.position = 0
        self.line = 1
        self.column = 1
        self.mode = LexerMode.TEXT
        self.tokens: List[Token] = []
        self.errors: List[TokenizerError] = []

    def tokenize(self) -> TokenizerResult:
        """
        Токенизирует весь исходный текст.

        Returns:
            Токены (последний всегда EOF) и накопленные ошибки
        """
        while self.position < self.length:
            if self.mode is LexerMode.TEXT:
                self._tokenize_text()
            elif self.mode is LexerMode.VARIABLE:
                self._tokenize_variable()
            else:
                self._tokenize_tag()

        # Ввод закончился внутри {{ или {%
        if self.mode is LexerMode.VARIABLE:
            self._error("Unclosed variable - missing '}}'")
        elif self.mode is LexerMode.TAG:
            self._error("Unclosed tag - missing '%}'")

        self.tokens.append(Token(TokenType.EOF, "", self.line, self.column))

        logger.debug(f"Tokenized template into {len(self.tokens)} tokens ({len(self.errors)} errors)")
        return TokenizerResult(tokens=self.tokens, errors=self.errors)

    # ---------------- Текст ----------------

    def _tokenize_text(self) -> None:
        """Накапливает текст до следующего {{ или {%."""
        start_pos = self.position
        start_line = self.line
        start_column = self.column

        while self.position < self.length:
            if self._look_ahead("{{") or self._look_ahead("{%"):
                if self.position > start_pos:
                    self._emit(TokenType.TEXT, self.text[start_pos:self.position], start_line, start_column)

                is_variable = self._look_ahead("{{")
                line, column = self.line, self.column
                self._advance(2)

                # Открывающие разделители никогда не обрезают пробелы
                if is_variable:
                    self.tokens.append(Token(TokenType.VARIABLE_START, "{{", line, column, trim_left=False))
                    self.mode = LexerMode.VARIABLE
                else:
                    self.tokens.append(Token(TokenType.TAG_START, "{%", line, column, trim_left=False))
                    self.mode = LexerMode.TAG
                return

            self._advance_char()

        if self.position > start_pos:
            self._emit(TokenType.TEXT, self.text[start_pos:self.position], start_line, start_column)

    # ---------------- Переменные {{ }} ----------------

    def _tokenize_variable(self) -> None:
        self._skip_whitespace()

        if self._look_ahead("}}"):
            self.tokens.append(Token(TokenType.VARIABLE_END, "}}", self.line, self.column, trim_right=False))
            self._advance(2)
            self.mode = LexerMode.TEXT
            return

        # Одиночная '}' вместо '}}' (частая опечатка), кроме случаев,
        # когда это часть выражения: }| или }, и т.п.
        if self._char_at(0) == "}" and self._char_at(1) != "}":
            if self._char_at(1) not in _VALID_AFTER_BRACE:
                self._error("Malformed variable: expected '}}' but found '}'. Did you forget a '}'?")
                # Синтетический конец переменной, чтобы не каскадировать ошибки
                self.tokens.append(Token(TokenType.VARIABLE_END, "}", self.line, self.column, trim_right=False))
                self._advance_char()
                self.mode = LexerMode.TEXT
                return

        # Новый {{ или {% до закрытия текущей переменной: {{titl\n{% set ...
        if self._look_ahead("{%") or self._look_ahead("{{"):
            self._discard_unterminated(TokenType.VARIABLE_START, "Missing closing '}}' for variable")
            return

        self._tokenize_expression()

    # ---------------- Теги {% %} ----------------

    def _tokenize_tag(self) -> None:
        self._skip_whitespace()

        # Теги всегда обрезают пробелы справа, маркер '-' ничего не меняет
        for closer in ("%}", "-%}"):
            if self._look_ahead(closer):
                self.tokens.append(Token(TokenType.TAG_END, closer, self.line, self.column, trim_right=True))
                self._advance(len(closer))
                self.mode = LexerMode.TEXT
                return

        # Одиночная '}' без '%' (частая опечатка) - иначе лексер съест следующие строки
        if self._char_at(0) == "}" and self.position > 0 and self.text[self.position - 1] != "%":
            self._error("Malformed tag: expected '%}' but found '}'. Did you forget the '%'?")
            self.tokens.append(Token(TokenType.TAG_END, "}", self.line, self.column, trim_right=True))
            self._advance_char()
            self.mode = LexerMode.TEXT
            return

        if self._look_ahead("{%") or self._look_ahead("{{"):
            self._discard_unterminated(TokenType.TAG_START, "Missing closing '%}' for tag")
            return

        self._tokenize_expression()

    def _discard_unterminated(self, start_type: TokenType, message: str) -> None:
        """
        Обрабатывает незакрытую переменную/тег.

        Удаляет открывающий токен и всё, что было токенизировано после него,
        и возвращается в текстовый режим на новом разделителе.
        """
        start_index: Optional[int] = None
        for index in range(len(self.tokens) - 1, -1, -1):
            if self.tokens[index].type is start_type:
                start_index = index
                break

        if start_index is not None:
            start_token = self.tokens[start_index]
            self.errors.append(TokenizerError(message, start_token.line, start_token.column))
            del self.tokens[start_index:]
        else:
            self._error(message)

        self.mode = LexerMode.TEXT

    # ---------------- Выражения ----------------

    def _tokenize_expression(self) -> None:
        """Сканирует один токен выражения (общая часть для переменных и тегов)."""
        self._skip_whitespace()

        if self.position >= self.length:
            return

        char = self._char_at(0)
        line, column = self.line, self.column

        if char in ('"', "'"):
            self._tokenize_string()
            return

        if _is_digit(char) or (char == "-" and _is_digit(self._char_at(1))):
            self._tokenize_number()
            return

        for operator, token_type in _MULTI_CHAR_OPERATORS:
            if self._look_ahead(operator):
                self._emit(token_type, operator, line, column)
                self._advance(len(operator))
                return

        token_type = _SINGLE_CHAR_TOKENS.get(char)
        if token_type is not None:
            self._emit(token_type, char, line, column)
            self._advance_char()
            return

        if _is_identifier_start(char):
            self._tokenize_identifier()
            return

        # Обратный слеш начинает экранированный аргумент фильтра: \" или \,
        if char == "\\":
            self._tokenize_escaped_argument()
            return

        self._error(f"Unexpected character '{char}' in template")
        self._advance_char()

    def _tokenize_string(self) -> None:
        quote = self._char_at(0)
        line, column = self.line, self.column
        chars: List[str] = []

        self._advance_char()  # открывающая кавычка

        while self.position < self.length:
            char = self._char_at(0)
            next_char = self._char_at(1)

            if char == quote:
                self._advance_char()
                self._emit(TokenType.STRING, "".join(chars), line, column)
                return

            # }} или %} внутри строки - скорее всего, забыта закрывающая кавычка
            if (char == "}" and next_char == "}") or (char == "%" and next_char == "}"):
                self.errors.append(TokenizerError(
                    f"Unclosed string - missing {quote} before {char}{next_char}", line, column
                ))
                self._emit(TokenType.STRING, "".join(chars), line, column)
                return

            if char == "\\" and self.position + 1 < self.length:
                self._advance_char()
                escaped = self._char_at(0)
                chars.append(_STRING_ESCAPES.get(escaped, escaped))
                self._advance_char()
                continue

            chars.append(char)
            self._advance_char()

        self.errors.append(TokenizerError(f"Unclosed string - missing closing {quote}", line, column))
        self._emit(TokenType.STRING, "".join(chars), line, column)

    def _tokenize_escaped_argument(self) -> None:
        """
        Токенизирует экранированный аргумент фильтра вида \\" или \\,.

        Аргумент продолжается до разделителя (|, %, }, ) или +% / +}),
        escape-последовательности раскрываются. Результат - строковый токен.
        """
        line, column = self.line, self.column
        chars: List[str] = []

        while self.position < self.length:
            char = self._char_at(0)
            next_char = self._char_at(1)

            if char in ("|", "%", "}", ")"):
                break
            if char == "+" and next_char in ("%", "}"):
                break

            if char == "\\" and self.position + 1 < self.length:
                chars.append(_ARGUMENT_ESCAPES.get(next_char, next_char))
                self._advance(2)
                continue

            chars.append(char)
            self._advance_char()

        self._emit(TokenType.STRING, "".join(chars), line, column)

    def _tokenize_number(self) -> None:
        line, column = self.line, self.column
        start = self.position

        if self._char_at(0) == "-":
            self._advance_char()

        while _is_digit(self._char_at(0)):
            self._advance_char()

        if self._char_at(0) == ".":
            self._advance_char()
            while _is_digit(self._char_at(0)):
                self._advance_char()

        self._emit(TokenType.NUMBER, self.text[start:self.position], line, column)

    def _tokenize_identifier(self) -> None:
        line, column = self.line, self.column
        start = self.position

        while self.position < self.length and _is_identifier_char(self._char_at(0)):
            self._advance_char()
        value = self.text[start:self.position]

        # selector: и selectorHtml: могут содержать скобки, кавычки и пробелы
        if value in _SELECTOR_PREFIXES and self._char_at(0) == ":":
            self._advance_char()
            value = self._tokenize_css_selector(value + ":")

        token_type = KEYWORDS.get(value.lower(), TokenType.IDENTIFIER)
        self._emit(token_type, value, line, column)

    def _tokenize_css_selector(self, value: str) -> str:
        """
        Дочитывает CSS-селектор после префикса selector: / selectorHtml:.

        Селектор может содержать пробелы, комбинаторы, атрибуты [attr="v"],
        псевдоклассы :nth-child(2) и строки в кавычках. Останавливается только
        на разделителях шаблона (|, }}, %}, -}}, -%}) вне скобок и строк.
        """
        chars: List[str] = [value]
        bracket_depth = 0
        paren_depth = 0
        in_string: Optional[str] = None

        while self.position < self.length:
            char = self._char_at(0)
            next_char = self._char_at(1)

            if in_string is None and bracket_depth == 0 and paren_depth == 0:
                if char == "|":
                    break
                if char == "%" and next_char == "}":
                    break
                if char == "-" and next_char in ("%", "}"):
                    break
                # Одиночная '}' - скорее всего, испорченное окончание тега
                if char == "}":
                    break

            # Незакрытые скобки/строки обнаруживаются на разделителе
            if (char == "}" and next_char == "}") or (char == "%" and next_char == "}"):
                if in_string is not None:
                    self._error(f"Unclosed string in selector - missing closing {in_string}")
                    break
                if bracket_depth > 0:
                    self._error("Unclosed '[' in selector - missing ']'")
                    break
                if paren_depth > 0:
                    self._error("Unclosed '(' in selector - missing ')'")
                    break

            # Экранированная кавычка вне строки ([attr=\"value\"]) строку не открывает
            if in_string is None and char == "\\" and next_char in ('"', "'"):
                chars.append(char + next_char)
                self._advance(2)
                continue

            if in_string is None and char in ('"', "'"):
                in_string = char
                chars.append(char)
                self._advance_char()
                continue

            if in_string is not None and char == in_string:
                in_string = None
                chars.append(char)
                self._advance_char()
                continue

            if in_string is not None and char == "\\" and self.position + 1 < self.length:
                chars.append(char + next_char)
                self._advance(2)
                continue

            if in_string is None:
                if char == "[":
                    bracket_depth += 1
                elif char == "]":
                    bracket_depth -= 1
                    if bracket_depth < 0:
                        self._error("Extra ']' in selector - no matching '['")
                        bracket_depth = 0
                elif char == "(":
                    paren_depth += 1
                elif char == ")":
                    paren_depth -= 1
                    if paren_depth < 0:
                        self._error("Extra ')' in selector - no matching '('")
                        paren_depth = 0

            chars.append(char)
            self._advance_char()

        return "".join(chars).rstrip()

    # ---------------- Вспомогательные методы ----------------

    def _emit(self, token_type: TokenType, value: str, line: int, column: int) -> None:
        self.tokens.append(Token(token_type, value, line, column))

    def _error(self, message: str) -> None:
        self.errors.append(TokenizerError(message, self.line, self.column))

    def _char_at(self, offset: int) -> str:
        """Символ со смещением от курсора или пустая строка за концом текста."""
        index = self.position + offset
        if index < self.length:
            return self.text[index]
        return ""

    def _look_ahead(self, expected: str) -> bool:
        return self.text.startswith(expected, self.position)

    def _advance(self, count: int) -> None:
        for _ in range(count):
            self._advance_char()

    def _advance_char(self) -> None:
        """Сдвигает курсор на один символ, обновляя номера строки и колонки."""
        if self.position < self.length:
            if self.text[self.position] == "\n":
                self.line += 1
                self.column = 1
            else:
                self.column += 1
            self.position += 1

    def _skip_whitespace(self) -> None:
        while self.position < self.length and _is_whitespace(self.text[self.position]):
            self._advance_char()


def tokenize(text: str) -> TokenizerResult:
    """
    Удобная функция для токенизации шаблона.

    Args:
        text: Исходный текст шаблона

    Returns:
        TokenizerResult с токенами и ошибками (исключения не выбрасываются)
    """
    return TemplateLexer(text).tokenize()


__all__ = ["LexerMode", "KEYWORDS", "TemplateLexer", "tokenize"]
