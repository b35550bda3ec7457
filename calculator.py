import argparse
import logging
import sys
from dataclasses import dataclass, field
from enum import Enum

import matplotlib.pyplot as plt
import numpy as np

logger = logging.getLogger(__name__)

MULTIPLY_SIGN = '×'
DIVIDE_SIGN = '÷'
DIGITS = '0123456789'

FORMAT_ERROR_MESSAGE = 'Invalid Format'
DIVIDE_BY_ZERO_MESSAGE = 'Cannot Divide by Zero.'

PROMPT = '\n>>> '
DEFAULT_X_FROM, DEFAULT_X_TO = -10, 10
PLOT_POINTS = 500


###############
## Tokenizer ##
###############

class Tokenizer():
    """Handles initial processing of the input string."""

    def __init__(self, line: str):
        self.line = line
        self.index = 0

    def make_tokens(self) -> 'list[Token]':
        """
        Converts a string into a list of tokens by iteratively going over each
        character. A FormatError is raised when a character is unrecognized or
        when there is nothing but whitespace to tokenize.
        """
        tokens = []

        while self.curr_char is not None:
            c = self.curr_char  # short variable name

            if c.isspace():
                self._skip_whitespace()
                continue

            index = self.index
            if c in DIGITS:
                text = self._make_number()
                kind = TokenKind.NUMBER
                if tokens and tokens[-1].kind is TokenKind.CARET:
                    kind = TokenKind.EXPONENT
                tokens.append(Token(kind, text, index))
                continue
            if c in SINGLE_CHAR_TOKENS:
                tokens.append(Token(SINGLE_CHAR_TOKENS[c], c, index))
                self._advance()
                continue
            if c == '-':
                tokens.append(Token(self._minus_kind(tokens), c, index))
                self._advance()
                continue

            word = self._match_function()
            if word is not None:
                tokens.append(Token(FUNCTION_NAMES[word], word, index))
                self._advance(len(word))
                continue

            # unrecognized character
            raise FormatError(f"Unrecognized character '{c}'", self.line, index)

        if not tokens:
            raise FormatError('Empty expression', self.line)
        return tokens

    def _make_number(self) -> str:
        """
        Advances over a run of digits. Only integer literals exist, so a
        period is left for the main loop to reject.
        """
        text = ''
        while self.curr_char is not None and self.curr_char in DIGITS:
            text += self.curr_char
            self._advance()
        return text

    def _match_function(self) -> str | None:
        for word in FUNCTION_NAMES:
            if self.line.startswith(word, self.index):
                return word
        return None

    @staticmethod
    def _minus_kind(tokens: 'list[Token]') -> 'TokenKind':
        # a leading minus, or one right after a binary operator, negates
        if not tokens or tokens[-1].kind in BINARY_OPERATORS:
            return TokenKind.UNARY_MINUS
        return TokenKind.MINUS

    def _skip_whitespace(self):
        """
        Keeps advancing until the current character is no longer a space.
        """
        while self.curr_char is not None and self.curr_char.isspace():
            self._advance()

    def _advance(self, count: int = 1):
        """
        Moves the index forward, never past the end of the line.
        """
        self.index = min(self.index + count, len(self.line))

    @property
    def curr_char(self) -> str | None:
        """
        Retrieves the current character, or None.
        """
        return self.line[self.index] if self.index < len(self.line) else None


class TokenKind(Enum):
    NUMBER = 'Number'
    EXPONENT = 'Exponent'
    PLUS = '+'
    MINUS = '-'
    MULTIPLY = MULTIPLY_SIGN
    DIVIDE = DIVIDE_SIGN
    REMAINDER = '%'
    CARET = '^'
    SQUARED = 'sqr'
    CUBED = 'cube'
    SINE = 'sin'
    COSINE = 'cos'
    TANGENT = 'tan'
    UNARY_MINUS = 'UnaryMinus'
    LEFT_PAREN = '('
    RIGHT_PAREN = ')'


OPERANDS = frozenset({TokenKind.NUMBER, TokenKind.EXPONENT})
BINARY_OPERATORS = frozenset({
    TokenKind.PLUS, TokenKind.MINUS,
    TokenKind.MULTIPLY, TokenKind.DIVIDE, TokenKind.REMAINDER,
})
# caret is binary when evaluated but waits on the stack like a function
FUNCTIONS = frozenset({
    TokenKind.SQUARED, TokenKind.CUBED,
    TokenKind.SINE, TokenKind.COSINE, TokenKind.TANGENT,
    TokenKind.UNARY_MINUS, TokenKind.CARET,
})

PRECEDENCE = {
    TokenKind.MULTIPLY: 3,
    TokenKind.DIVIDE: 3,
    TokenKind.REMAINDER: 3,
    TokenKind.PLUS: 2,
    TokenKind.MINUS: 2,
    TokenKind.CARET: 4,
}

SINGLE_CHAR_TOKENS = {
    '+': TokenKind.PLUS,
    '%': TokenKind.REMAINDER,
    '^': TokenKind.CARET,
    '(': TokenKind.LEFT_PAREN,
    ')': TokenKind.RIGHT_PAREN,
    MULTIPLY_SIGN: TokenKind.MULTIPLY,
    DIVIDE_SIGN: TokenKind.DIVIDE,
}

FUNCTION_NAMES = {
    'sin': TokenKind.SINE,
    'cos': TokenKind.COSINE,
    'tan': TokenKind.TANGENT,
    'sqr': TokenKind.SQUARED,
    'cube': TokenKind.CUBED,
}


@dataclass(frozen=True)
class Token():
    """
    A single lexical unit. `index` is the position in the source text and only
    serves error reporting, so two tokens compare equal regardless of it.
    """
    kind: TokenKind
    text: str
    index: int = field(default=0, compare=False)
    precedence: int = field(init=False, default=0)

    def __post_init__(self):
        object.__setattr__(self, 'precedence', PRECEDENCE.get(self.kind, 0))

    def __str__(self) -> str:
        return f'Token({self.kind}, {self.text})'


def tokenize(expression: str) -> list[Token]:
    return Tokenizer(expression).make_tokens()


###############
## Converter ##
###############

def to_postfix(tokens: list[Token]) -> list[Token]:
    """
    Runs a modified shunting-yard algorithm to reorder `tokens` into postfix
    (reverse Polish) order.

    Functions are held on the operator stack until their argument closes at a
    right parenthesis or at the end of input. Binary operators pop anything of
    greater or equal precedence first, which makes them left-associative and
    releases a pending caret, as well as any unary minus waiting on top of the
    stack. Unbalanced parentheses are not reported here;
    they end up in the output, where the evaluator rejects them.
    """
    output = []
    stack = []

    for token in tokens:
        if token.kind in OPERANDS:
            output.append(token)

        elif token.kind in FUNCTIONS:
            stack.append(token)

        elif token.kind in BINARY_OPERATORS:
            # a negation on top of the stack already has its whole operand
            while stack and (stack[-1].precedence >= token.precedence
                             or stack[-1].kind is TokenKind.UNARY_MINUS):
                output.append(stack.pop())
            stack.append(token)

        elif token.kind is TokenKind.LEFT_PAREN:
            stack.append(token)

        elif token.kind is TokenKind.RIGHT_PAREN:
            while stack and stack[-1].kind is not TokenKind.LEFT_PAREN:
                output.append(stack.pop())
            if not stack:
                output.append(token)
                continue
            stack.pop()

            # a function written right before the parenthesis takes the group
            while stack and stack[-1].kind in FUNCTIONS:
                output.append(stack.pop())

    while stack:
        output.append(stack.pop())

    return output


###############
## Evaluator ##
###############

@np.errstate(all='ignore')
def apply_binary(kind: TokenKind, left: float, right: float) -> np.float64:
    """
    Applies a binary operator, caret included, as `left op right`.

    Only division checks its operands; everything else follows IEEE
    semantics and may produce inf or nan.
    """
    left, right = np.float64(left), np.float64(right)
    match kind:
        case TokenKind.PLUS:
            return left + right
        case TokenKind.MINUS:
            return left - right
        case TokenKind.MULTIPLY:
            return left * right
        case TokenKind.DIVIDE:
            if right == 0:
                raise DivideByZeroError()
            return left / right
        case TokenKind.REMAINDER:
            return np.fmod(left, right)
        case TokenKind.CARET:
            return np.power(left, right)
    raise ValueError(f'{kind} is not a binary operator')


@np.errstate(all='ignore')
def apply_function(kind: TokenKind, value: float) -> np.float64:
    """Applies a single-argument function. Trigonometry works in degrees."""
    value = np.float64(value)
    match kind:
        case TokenKind.SQUARED:
            return np.power(value, 2)
        case TokenKind.CUBED:
            return np.power(value, 3)
        case TokenKind.SINE:
            return np.sin(value * np.pi / 180)
        case TokenKind.COSINE:
            return np.cos(value * np.pi / 180)
        case TokenKind.TANGENT:
            return np.tan(value * np.pi / 180)
        case TokenKind.UNARY_MINUS:
            return value * -1
    raise ValueError(f'{kind} is not a function')


def evaluate(postfix: list[Token]) -> float:
    """
    Evaluates a postfix token sequence with a single operand stack.

    Raises DivideByZeroError for a division by exactly zero, and FormatError
    when the sequence does not reduce to exactly one value.
    """
    stack = []

    for token in postfix:
        if token.kind in OPERANDS:
            stack.append(_parse_operand(token))

        elif token.kind in BINARY_OPERATORS or token.kind is TokenKind.CARET:
            # the first pop is the right-hand side (the exponent, for caret)
            right = _pop_operand(stack, token)
            left = _pop_operand(stack, token)
            stack.append(apply_binary(token.kind, left, right))

        elif token.kind in FUNCTIONS:
            stack.append(apply_function(token.kind, _pop_operand(stack, token)))

        else:
            raise FormatError('Unbalanced parenthesis', index=token.index)

    if not stack:
        raise FormatError('Nothing to evaluate')
    if len(stack) > 1:
        raise FormatError(f'{len(stack) - 1} operand(s) without an operator')
    return float(stack[0])


def _parse_operand(token: Token) -> np.float64:
    try:
        return np.float64(token.text)
    except ValueError as e:
        raise FormatError(f'Invalid number "{token.text}"', index=token.index,
                          length=len(token.text)) from e


def _pop_operand(stack: list, token: Token) -> np.float64:
    if not stack:
        raise FormatError(f"Missing operand for '{token.text}'", index=token.index,
                          length=len(token.text))
    return stack.pop()


def calculate(expression: str) -> float:
    """
    Evaluates an arithmetic expression: tokenize, reorder into postfix, then
    evaluate. Every failure surfaces as either FormatError or
    DivideByZeroError.
    """
    try:
        tokens = tokenize(expression)
        logger.debug('Tokens: %s', tokens)
        postfix = to_postfix(tokens)
        logger.debug('Postfix: %s', ' '.join(token.text for token in postfix))
        return evaluate(postfix)
    except DivideByZeroError:
        logger.debug('Division by zero in %r', expression)
        raise
    except FormatError as e:
        if e.text is None:
            e.text = expression
        logger.debug('Invalid format in %r: %s', expression, e.detail)
        raise
    except Exception as e:
        logger.debug('Failed to evaluate %r', expression, exc_info=True)
        raise FormatError(str(e)) from e


################
## Exceptions ##
################

class FormatError(ValueError):
    """
    Raised for anything that is not a well-formed expression. The message is
    always "Invalid Format"; `detail`, and the location when one is known,
    say what went wrong.
    """

    def __init__(self, detail: str = '', text: str | None = None,
                 index: int | None = None, length: int = 1):
        self.detail = detail
        self.text = text
        self.index = index
        self.length = length
        super().__init__(FORMAT_ERROR_MESSAGE)

    def describe(self) -> str:
        """
        Renders the error with the offending characters highlighted, e.g.

            Invalid Format: 1 + @
                                ^
            Unrecognized character '@'
        """
        if not self.text or self.index is None:
            return f'{self}: {self.detail}' if self.detail else str(self)

        prefix = f'{self}: '
        lines = [prefix + self.text, ' ' * len(prefix) + self._get_error_highlight()]
        if self.detail:
            lines.append(self.detail)
        return '\n'.join(lines)

    def _get_error_highlight(self) -> str:
        return ' ' * self.index + '^' * self.length


class DivideByZeroError(ZeroDivisionError):
    def __init__(self):
        super().__init__(DIVIDE_BY_ZERO_MESSAGE)


################
## Calculator ##
################

ASCII_OPERATORS = str.maketrans({'*': MULTIPLY_SIGN, '/': DIVIDE_SIGN})
PLOT_USAGE = 'PLOT <function_name> [, <x_from=-10>, <x_to=10>]'


def normalize_operators(line: str) -> str:
    """Lets `*` and `/` be typed in place of the multiplication and division signs."""
    return line.translate(ASCII_OPERATORS)


def format_result(value: float) -> str:
    return str(int(value)) if value.is_integer() else str(value)


def sample_function(kind: TokenKind, x_min: float, x_max: float,
                    count: int = PLOT_POINTS) -> tuple[np.ndarray, np.ndarray]:
    x_vals = np.linspace(x_min, x_max, count)
    y_vals = np.array([apply_function(kind, x) for x in x_vals])
    return x_vals, y_vals


class Calculator():
    def __init__(self):
        self.commands = {
            'EXIT': self._exit,
            'PLOT': self._plot
        }

    def _exit(self, args: str):
        """Syntax: EXIT"""
        raise SystemExit()

    def _plot(self, args: str):
        """Syntax: PLOT <function_name> [, <x_from=-10>, <x_to=10>]

        Plots the graph of one of the built-in functions (sin, cos, tan, sqr,
        cube) using matplotlib without blocking the main thread. The range for
        the x axis is [-10, 10] by default.
        """
        parts = [arg.strip() for arg in args.split(',')]

        try:
            if len(args) == 0:
                raise ValueError

            func_name = parts[0]
            x_min = float(parts[1]) if len(parts) > 1 else DEFAULT_X_FROM
            x_max = float(parts[2]) if len(parts) > 2 else DEFAULT_X_TO
        except ValueError:
            raise ValueError(f'Syntax error. Correct usage:\n  {PLOT_USAGE}')

        if func_name not in FUNCTION_NAMES:
            raise ValueError(f'"{func_name}" is not a function name. Correct usage:'
                             f'\n  {PLOT_USAGE}')

        x_vals, y_vals = sample_function(FUNCTION_NAMES[func_name], x_min, x_max)

        plt.plot(x_vals, y_vals)
        plt.xlabel('x')
        plt.ylabel(f'{func_name}(x)')
        plt.title(f'Graph of {func_name}(x), x ∈ [{x_min}, {x_max}]')
        plt.grid(True)
        plt.show(block=False)

    def run(self):
        """The read-eval-print loop.

        Commands are identified by the first word of the line, and handled
        seperately from a normal evaluation.
        """
        try:
            while True:
                try:
                    line = input(PROMPT).strip()
                    if not line:
                        continue

                    for cmd, handler in self.commands.items():
                        if line.startswith(cmd):
                            handler(line[len(cmd):].strip())
                            break
                    else:
                        result = calculate(normalize_operators(line))
                        print(format_result(result))
                except (SystemExit, EOFError):
                    break
                except FormatError as e:
                    print(e.describe())
                except Exception as e:
                    print(e)
        except KeyboardInterrupt:
            pass


################
## Entrypoint ##
################

def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        description='Evaluate arithmetic expressions with the shunting-yard algorithm.'
    )
    parser.add_argument(
        'expression',
        nargs='?',
        help='Expression to evaluate once; starts the interactive calculator if omitted'
    )
    parser.add_argument(
        '--verbose',
        action='store_true',
        help='Log tokens and postfix order of every evaluation'
    )
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    if args.expression is None:
        Calculator().run()
        return 0

    try:
        result = calculate(normalize_operators(args.expression))
    except FormatError as e:
        print(e.describe(), file=sys.stderr)
        return 1
    except DivideByZeroError as e:
        print(e, file=sys.stderr)
        return 1

    print(format_result(result))
    return 0


if __name__ == '__main__':
    sys.exit(main())
