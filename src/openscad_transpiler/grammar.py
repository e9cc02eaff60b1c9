#######################################################################
# Arpeggio PEG Token Grammar for OpenSCAD
#######################################################################

from __future__ import unicode_literals

from arpeggio import ZeroOrMore, EOF, RegExMatch as _


# --- Token stream root ---

def openscad_tokens():
    return (ZeroOrMore(token), EOF)


def token():
    # Order matters: the unterminated forms only match once the complete
    # forms have failed at the same position. They run to the end of input,
    # so the rest of the text is never tokenized.
    return [
        TOK_NUMBER,
        TOK_SPECIAL_VAR,
        TOK_ID,
        TOK_STRING,
        TOK_UNTERMINATED_STRING,
        TOK_UNTERMINATED_COMMENT,
        TOK_OPERATOR,
        TOK_PUNCTUATION,
    ]


# --- Lexical and basic rules ---

def comment_line():
    return _(r'//.*?$', str_repr='comment')


def comment_multi():
    return _(r'(?ms)/\*.*?\*/', str_repr='comment')


def comment():
    return [comment_line, comment_multi]


# --- Tokens ---

def TOK_NUMBER():
    # An exponent is only part of the number when digits follow it, so
    # "1e" and "1e+" stop before the "e".
    return _(
        r'(\d+(\.\d+)?|\.\d+)'
        r'([eE][+-]?\d+)?',
        str_repr='number'
        )


def TOK_SPECIAL_VAR():
    return _(r'\$[A-Za-z0-9_]*', str_repr='special variable')


def TOK_ID():
    return _(r'[A-Za-z_][A-Za-z0-9_]*', str_repr='identifier')


def TOK_STRING():
    return _(r'"([^"\\\n]|\\.)*"', str_repr='string')


def TOK_UNTERMINATED_STRING():
    return _(r'(?s)".*', str_repr='unterminated string')


def TOK_UNTERMINATED_COMMENT():
    return _(r'(?s)/\*.*', str_repr='unterminated comment')


def TOK_OPERATOR():
    return _(r'==|!=|<=|>=|&&|\|\||[=!<>+\-*/%^?:]', str_repr='operator')


def TOK_PUNCTUATION():
    return _(r'[(){}\[\],;.]', str_repr='punctuation')


# vim: set ts=4 sw=4 expandtab:
