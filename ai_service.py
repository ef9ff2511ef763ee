import logging
import re

from google import genai
from google.genai import errors as genai_errors
from google.genai import types as genai_types


DEFAULT_MODEL = 'gemini-2.5-flash'

PLACEHOLDER_KEY = 'your_gemini_api_key_here'

PROFILE_FIELDS = (
    ('realName', 'Real Name'),
    ('location', 'Location'),
    ('occupation', 'Occupation'),
    ('joinYear', 'Member since'),
    ('languages', 'Languages'),
    ('interests', 'Interests/Hobbies'),
    ('aboutMe', 'About Me'),
)


GENERATE_SYSTEM_PROMPT = '''You are an expert Wikimedia markup generator. Generate a professional user profile page in MediaWiki wikitext format. Always add beautiful styling to it.

IMPORTANT GUIDELINES:
1. Use proper MediaWiki syntax (not Markdown)
2. Include inline CSS styling within wiki tables for visual appeal
3. Use wikitable class with custom styling (background colors, borders, padding)
4. Create an attractive user information box (infobox style) on the right side
5. Use proper wiki heading syntax (== Heading ==)
6. Use wiki list syntax (* for bullets, # for numbered)
7. Include relevant categories at the end
8. Use wiki link syntax [[Page|Display Text]] for internal links
9. Add userboxes if appropriate using {{Babel}} or similar templates where applicable
10. Make the profile look professional and well-formatted

Output ONLY the wikitext code, no explanations or markdown code blocks.'''


EDIT_SYSTEM_PROMPT = '''You are an expert Wikimedia markup editor. Your task is to modify ONLY the selected portion of wikitext based on the user's instruction.

CRITICAL RULES:
1. ONLY modify the specific selected text provided
2. Keep all other parts of the wikitext EXACTLY the same
3. Use proper MediaWiki syntax (not Markdown)
4. Preserve any existing styling and formatting in the selection
5. If adding new content, match the style of the surrounding content
6. Output the complete modified wikitext with ONLY the targeted section changed

FORMATTING GUIDELINES:
- Use proper wiki heading syntax (== Heading ==)
- Use wiki list syntax (* for bullets, # for numbered)
- Use wiki link syntax [[Page|Display Text]] for internal links
- Include inline CSS styling within wiki tables for visual appeal
- Use \'\'\'bold\'\'\' and \'\'italic\'\' wiki formatting

You MUST output ONLY the complete modified wikitext. No explanations, no markdown code blocks.'''


logger = logging.getLogger('wikiprofile.ai')


class AIServiceError(Exception):
    pass


def has_api_key(api_key):
    return bool(api_key) and api_key != PLACEHOLDER_KEY


def make_client(api_key):
    if not has_api_key(api_key):
        return None
    return genai.Client(api_key=api_key)


def clean_model_output(text):
    text = text.strip()
    text = re.sub(r'^```(?:wikitext|mediawiki|wiki)?\n?', '', text, flags=re.IGNORECASE)
    text = re.sub(r'\n?```$', '', text)
    return text.strip()


def generate_wikitext(client, system_prompt, user_prompt, model=DEFAULT_MODEL):
    logger.debug(f'Generating with {model}, prompt of {len(user_prompt)} chars')
    try:
        resp = client.models.generate_content(
            model=model,
            contents=user_prompt,
            config=genai_types.GenerateContentConfig(system_instruction=system_prompt),
        )
    except genai_errors.APIError as e:
        raise AIServiceError(e.message or str(e)) from e
    except Exception as e:
        # transport failures (httpx, sockets) surface untyped
        raise AIServiceError(str(e) or type(e).__name__) from e

    if not resp.text:
        raise AIServiceError('Model returned no text')
    return clean_model_output(resp.text)


def build_edit_prompt(original_wikitext, instruction, selected_text=None):
    parts = [
        'Here is the complete wikitext content:',
        '',
        '---BEGIN WIKITEXT---',
        original_wikitext,
        '---END WIKITEXT---',
        '',
    ]

    if selected_text and selected_text.strip():
        parts += [
            'The user has selected this specific text to modify:',
            '---BEGIN SELECTION---',
            selected_text,
            '---END SELECTION---',
            '',
        ]

    parts += [
        f'User\'s edit instruction: "{instruction}"',
        '',
        'IMPORTANT: Modify ONLY the selected text (or apply the instruction minimally if no selection). '
        'Keep everything else EXACTLY the same.',
        '',
        'Output the complete modified wikitext:',
    ]
    return '\n'.join(parts)


def build_profile_prompt(profile):
    parts = [
        'Generate a Wikimedia user profile page for the following user:',
        '',
        f'Username: {profile["username"]}',
    ]
    for key, label in PROFILE_FIELDS:
        if profile.get(key):
            parts.append(f'{label}: {profile[key]}')

    parts += [
        '',
        'Create a visually appealing profile with:',
        '- A styled infobox/userbox on the right with user details',
        '- Proper section headings',
        '- Styled tables with inline CSS (background colors like #0057B7 for headers)',
        '- Language babel boxes if languages are provided',
        '- Appropriate categories',
        '- A welcoming talk page link',
    ]
    return '\n'.join(parts)


def split_list(value):
    return [item.strip() for item in value.split(',') if item.strip()]


def parse_language(entry):
    match = re.match(r'(.+?)\s*\((.+?)\)', entry)
    if match:
        return match.group(1), match.group(2)
    return entry, 'Native/Fluent'


def generate_fallback_markup(profile):
    username = profile.get('username') or 'User'
    label_style = 'style="background:#f8f9fa; padding:5px; font-weight:bold;"'
    value_style = 'style="padding:5px;"'

    lines = [
        '{| class="wikitable" style="float:right; margin-left:1em; width:280px; border:2px solid #0057B7;"',
        '|-',
        f'! colspan="2" style="background:#0057B7; color:white; font-size:1.2em; padding:10px;" | {username}',
    ]
    for key, label in (('realName', 'Name'), ('location', 'Location'),
                       ('occupation', 'Occupation'), ('joinYear', 'Member since')):
        if profile.get(key):
            lines += [
                '|-',
                f'| {label_style} | {label}',
                f'| {value_style} | {profile[key]}',
            ]
    lines += ['|}', '']

    lines += [
        '<div style="font-size:1.1em; color:#333;">',
        "'''Welcome to my user page!''' I am an active contributor to the Wikimedia projects.",
        '</div>',
        '',
    ]

    if profile.get('aboutMe'):
        lines += [
            '== About me ==',
            '<div style="background:#f8f9fa; padding:15px; border-radius:8px; border-left:4px solid #0057B7;">',
            profile['aboutMe'],
            '</div>',
            '',
        ]

    if profile.get('languages'):
        header_style = 'style="background:#0057B7; color:white; padding:8px;"'
        lines += [
            '== Languages ==',
            '{| class="wikitable" style="border-collapse:collapse;"',
            '|-',
            f'! {header_style} | Language',
            f'! {header_style} | Proficiency',
        ]
        for entry in split_list(profile['languages']):
            language, level = parse_language(entry)
            lines += [
                '|-',
                f'| style="padding:6px;" | {language}',
                f'| style="padding:6px;" | {level}',
            ]
        lines += ['|}', '']

    if profile.get('interests'):
        lines += ['== Interests ==', '<div style="display:flex; flex-wrap:wrap; gap:8px;">']
        for interest in split_list(profile['interests']):
            lines.append(
                '<span style="background:#e3f2fd; color:#0057B7; padding:5px 12px; '
                f'border-radius:15px; font-size:0.9em;">{{{{·}}}} {interest}</span>'
            )
        lines += ['</div>', '']

    lines += [
        '== Contact ==',
        '{| style="background:#fff3cd; padding:15px; border-radius:8px; border:1px solid #ffc107; width:100%;"',
        '|-',
        f'| style="font-size:1.1em;" | Feel free to leave a message on my [[User talk:{username}|talk page]]!',
        '|}',
        '',
        '[[Category:Wikipedians]]',
    ]
    if profile.get('location'):
        city = profile['location'].split(',')[0].strip()
        lines.append(f'[[Category:Wikipedians in {city}]]')

    return '\n'.join(lines)
