"""
Whitespace cleanup for recognized LaTeX.
"""

import re

# Commands whose braced argument should not contain spaces
TEXT_COMMAND = re.compile(r"(\\(operatorname|mathrm|text|mathbf)\s?\*? {.*?})")

LETTER = "[a-zA-Z]"
NON_LETTER = r"[\W_^\d]"

_NON_LETTER_PAIR = re.compile(r"(?!\\ )(%s)\s+?(%s)" % (NON_LETTER, NON_LETTER))
_NON_LETTER_LETTER = re.compile(r"(?!\\ )(%s)\s+?(%s)" % (NON_LETTER, LETTER))
_LETTER_NON_LETTER = re.compile(r"(%s)\s+?(%s)" % (LETTER, NON_LETTER))


def tidy_latex(latex: str) -> str:
    """
    Remove spaces that carry no meaning in LaTeX.

    Spaces between two letters are kept (``\\alpha b`` must not become
    ``\\alphab``); explicit ``\\ `` spaces are kept too.

    Example:
        >>> tidy_latex("x ^ { 2 } + \\\\mathrm { d x }")
        'x^{2}+\\\\mathrm{dx}'
    """
    names = [match[0].replace(" ", "") for match in TEXT_COMMAND.findall(latex)]
    latex = TEXT_COMMAND.sub(lambda _: names.pop(0), latex)

    while True:
        previous = latex
        latex = _NON_LETTER_PAIR.sub(r"\1\2", latex)
        latex = _NON_LETTER_LETTER.sub(r"\1\2", latex)
        latex = _LETTER_NON_LETTER.sub(r"\1\2", latex)
        if latex == previous:
            return latex
