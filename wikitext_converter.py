"""
HTML to wikitext conversion.

Best-effort converter for HTML produced by the MediaWiki parser (or edited
from it in the browser). No DOM is built: the document goes once through an
ordered list of regex rewrites and whatever is not recognised is stripped.

Usage:
    from wikitext_converter import convert

    convert('<h2>About</h2><p>Hi <b>there</b></p>')
    # "== About ==\nHi '''there'''"
"""

import re
from collections import namedtuple


RewriteRule = namedtuple('RewriteRule', ['name', 'pattern', 'replacement'])

FLAGS = re.IGNORECASE
MULTILINE_FLAGS = re.IGNORECASE | re.DOTALL

ENTITIES = {
    'nbsp': ' ',
    'amp': '&',
    'lt': '<',
    'gt': '>',
    'quot': '"',
    '#39': "'",
}

# private use characters; any already in the input are shielded first
SHIELD_OPEN = '\ue000'
SHIELD_CLOSE = '\ue001'
SHIELD_RE = re.compile(f'{SHIELD_OPEN}(\\d+){SHIELD_CLOSE}')
SHIELD_CHARS_RE = re.compile(f'[{SHIELD_OPEN}{SHIELD_CLOSE}]')

TAG_RE = re.compile(r'<[^>]+>')
# "<b" with no closing bracket before the next tag or line end
UNTERMINATED_TAG_RE = re.compile(r'<[a-zA-Z/!][^<>\n]*(?=<|\n|$)')


def _rule(name, pattern, replacement, flags=FLAGS):
    return RewriteRule(name, re.compile(pattern, flags), replacement)


def _preformatted(match, shield):
    # interior is frozen here; only raw tags are dropped from it
    body = TAG_RE.sub('', match.group(1))
    body = UNTERMINATED_TAG_RE.sub('', body)
    return shield(f'<syntaxhighlight>\n{body}\n</syntaxhighlight>') + '\n'


def _inline_code(match, shield):
    return shield('<code>') + match.group(1) + shield('</code>')


def _image(match, shield):
    tag = match.group(0)
    src = re.search(r'\bsrc="([^"]*)"', tag, FLAGS)
    alt = re.search(r'\balt="([^"]*)"', tag, FLAGS)
    if not src or not alt:
        return tag
    filename = src.group(1).rstrip('/').split('/')[-1]
    if not filename:
        return tag
    return f'[[File:{filename}|{alt.group(1)}]]'


def _entity(match, shield):
    return ENTITIES[match.group(1)]


def _heading_rules():
    rules = []
    for level in range(1, 7):
        marker = '=' * level
        rules.append(_rule(
            f'heading-{level}',
            rf'<h{level}\b[^>]*>(.*?)</h{level}>',
            f'{marker} \\1 {marker}\n',
        ))
    return rules


RULES = [
    _rule('container-unwrap',
          r'<div\b[^>]*class="(?:[^"]*\s)?mw-parser-output(?:\s[^"]*)?"[^>]*>(.*?)</div>',
          r'\1', MULTILINE_FLAGS),

    *_heading_rules(),

    _rule('bold', r'<b\b[^>]*>(.*?)</b>', r"'''\1'''"),
    _rule('strong', r'<strong\b[^>]*>(.*?)</strong>', r"'''\1'''"),
    _rule('italic', r'<i\b[^>]*>(.*?)</i>', r"''\1''"),
    _rule('em', r'<em\b[^>]*>(.*?)</em>', r"''\1''"),

    _rule('internal-link', r'<a\b[^>]*href="/wiki/([^"]*)"[^>]*>(.*?)</a>', r'[[\1|\2]]'),
    _rule('external-link', r'<a\b[^>]*href="([^"]*)"[^>]*>(.*?)</a>', r'[\1 \2]'),

    _rule('list-open', r'<[ou]l\b[^>]*>', ''),
    _rule('list-close', r'</[ou]l\s*>', '\n'),
    _rule('list-item', r'<li\b[^>]*>(.*?)</li>', '* \\1\n'),

    _rule('paragraph', r'<p\b[^>]*>(.*?)</p>', '\\1\n\n', MULTILINE_FLAGS),
    _rule('line-break', r'<br\b[^>]*>', '\n'),
    _rule('rule', r'<hr\b[^>]*>', '----\n'),

    _rule('preformatted', r'<pre\b[^>]*>(.*?)</pre>', _preformatted, MULTILINE_FLAGS),
    _rule('code', r'<code\b[^>]*>(.*?)</code>', _inline_code),

    _rule('wikitable-open', r'<table\b[^>]*class="[^"]*wikitable[^"]*"[^>]*>', '{| class="wikitable"\n'),
    _rule('table-open', r'<table\b[^>]*>', '{|\n'),
    _rule('table-close', r'</table\s*>', '|}\n'),
    _rule('row-open', r'<tr\b[^>]*>', '|-\n'),
    _rule('row-close', r'</tr\s*>', ''),
    _rule('header-cell', r'<th\b[^>]*>(.*?)\s*</th>', '! \\1\n', MULTILINE_FLAGS),
    _rule('data-cell', r'<td\b[^>]*>(.*?)\s*</td>', '| \\1\n', MULTILINE_FLAGS),

    _rule('image', r'<img\b[^>]*>', _image),

    _rule('div', r'<div\b[^>]*>(.*?)</div>', '\\1\n', MULTILINE_FLAGS),
    _rule('span', r'<span\b[^>]*>(.*?)</span>', r'\1'),

    RewriteRule('residual-tags', TAG_RE, ''),
    RewriteRule('unterminated-tags', UNTERMINATED_TAG_RE, ''),

    _rule('entities', r'&(nbsp|amp|lt|gt|quot|#39);', _entity, 0),

    _rule('blank-lines', r'\n{3,}', '\n\n'),
]


class RewritePipeline:
    """Ordered rewrite rules applied to a whole document, top to bottom."""

    def __init__(self, rules):
        self.rules = list(rules)

    def stage_names(self):
        return [rule.name for rule in self.rules]

    def run(self, html):
        shielded = []

        def shield(text):
            shielded.append(text)
            return f'{SHIELD_OPEN}{len(shielded) - 1}{SHIELD_CLOSE}'

        def unshield(match):
            return SHIELD_RE.sub(unshield, shielded[int(match.group(1))])

        text = SHIELD_CHARS_RE.sub(lambda m: shield(m.group(0)), html)
        for rule in self.rules:
            if callable(rule.replacement):
                text = rule.pattern.sub(lambda m, fn=rule.replacement: fn(m, shield), text)
            else:
                text = rule.pattern.sub(rule.replacement, text)

        text = text.strip()
        if shielded:
            text = SHIELD_RE.sub(unshield, text)
        return text


PIPELINE = RewritePipeline(RULES)


def convert(html):
    """Convert an HTML fragment to MediaWiki wikitext. Never raises for a str."""
    if not html:
        return ''
    return PIPELINE.run(html)
