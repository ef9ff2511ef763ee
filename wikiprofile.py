import os
import logging
from logging.handlers import RotatingFileHandler
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
from flask import Flask, Response, request, redirect, jsonify
from markupsafe import escape
from werkzeug.exceptions import HTTPException
from dotenv import load_dotenv

import ai_service
import wiki_service
from profile_state import ProfileState
from wiki_service import DEFAULT_DOMAIN, WIKI_DOMAINS, UpstreamError
from wikitext_converter import convert


load_dotenv()


MAX_TEXT_LENGTH = 2 * 1024 * 1024
STATE_FIELDS = ('username', 'domain', 'wikitext')


LOG_DIR = os.environ.get('LOG_DIR', './logs')
STATE_FILE = os.environ.get('STATE_FILE', './data/profile-state.json')
GEMINI_MODEL = os.environ.get('GEMINI_MODEL', ai_service.DEFAULT_MODEL)


DOCTYPE = '<!DOCTYPE html>'


META = '<meta charset="utf-8">'


HEADER = '''<header>
<h1><a href="/">Wiki Profile Builder</a></h1>
<small>Fetch, edit and regenerate Wikimedia user pages.</small>
</header>
<hr>'''


HOME_TEMPLATE = '''{doctype}
<html>
<head>
{meta}
<title>Wiki Profile Builder</title>
</head>
<body>
{header}
<form action="/editor" method="get">
<label>Username <input type="text" name="username" value="{username}" size="30"></label>
<select name="domain">
{domain_options}
</select>
<input type="submit" value="Load profile">
</form>
</body>
</html>'''


EDITOR_TEMPLATE = '''{doctype}
<html>
<head>
{meta}
<title>User:{username} - Wiki Profile Builder</title>
</head>
<body>
{header}
<h2>User:{username} <small>({domain})</small></h2>
{notice}
<form action="/editor" method="post">
<textarea name="wikitext" rows="30" cols="100">{wikitext}</textarea>
<br>
<input type="submit" value="Save">
</form>
<h2>Preview</h2>
<div class="preview">
{preview}
</div>
</body>
</html>'''


ERROR_TEMPLATE = '''{doctype}
<html>
<head>
{meta}
<title>Error - Wiki Profile Builder</title>
</head>
<body>
<h1>Error</h1>
<p>{message}</p>
<p><a href="/">Home</a></p>
</body>
</html>'''


if not os.path.exists(LOG_DIR):
    os.makedirs(LOG_DIR)

file_handler = RotatingFileHandler(
    f'{LOG_DIR}/access.log',
    maxBytes=1024*1024,
    backupCount=5
)
file_handler.setFormatter(logging.Formatter('%(asctime)s - %(message)s'))
file_handler.setLevel(logging.INFO)
access_logger = logging.getLogger('wikiprofile.access')
access_logger.setLevel(logging.INFO)
access_logger.addHandler(file_handler)

app = Flask(__name__)
app.config['MAX_CONTENT_LENGTH'] = MAX_TEXT_LENGTH
app.config['RATELIMIT_ENABLED'] = os.environ.get('RATELIMIT_ENABLED', 'true').lower() == 'true'

limiter = Limiter(
    key_func=get_remote_address,
    default_limits=["5 per second"]
)
limiter.init_app(app)

state = ProfileState(STATE_FILE).load()


def json_error(message, status):
    return jsonify({'success': False, 'error': message}), status


def get_json_body():
    body = request.get_json(silent=True)
    if not isinstance(body, dict):
        return None
    return body


def get_domain(value):
    domain = (value or DEFAULT_DOMAIN).strip().lower()
    if not wiki_service.is_valid_domain(domain):
        return None
    return domain


def get_ai_client():
    return ai_service.make_client(os.environ.get('GEMINI_API_KEY', ''))


def render_error(message):
    return ERROR_TEMPLATE.format(
        doctype=DOCTYPE,
        meta=META,
        message=escape(message)
    )


def render_domain_options(selected):
    options = []
    for value, label in WIKI_DOMAINS:
        attr = ' selected' if value == selected else ''
        options.append(f'<option value="{escape(value)}"{attr}>{escape(label)}</option>')
    return '\n'.join(options)


@app.route('/')
def home():
    return HOME_TEMPLATE.format(
        doctype=DOCTYPE,
        meta=META,
        header=HEADER,
        username=escape(state.username),
        domain_options=render_domain_options(state.domain),
    )


@app.route('/editor', methods=['GET'])
def editor():
    username = request.args.get('username', '').strip()

    if username:
        domain = get_domain(request.args.get('domain'))
        if not wiki_service.is_valid_username(username):
            return Response(render_error('Invalid username'), mimetype='text/html'), 400
        if domain is None:
            return Response(render_error('Invalid wiki domain'), mimetype='text/html'), 400

        state.update(loading=True)
        try:
            result = wiki_service.fetch_profile(username, domain)
        except UpstreamError as e:
            app.logger.error(f'Could not fetch profile {username}@{domain}: {e}')
            state.update(error=str(e))
            return Response(render_error('Could not fetch profile. Please try again.'), mimetype='text/html')
        finally:
            state.update(loading=False)

        if result.get('missing'):
            state.update(username=username, domain=domain, error=f'User page "User:{username}" does not exist on {domain}')
        else:
            state.update(username=username, domain=domain, wikitext=result['wikitext'], error=None)
        return redirect('/editor')

    if not state.username:
        return redirect('/')

    notice = ''
    if state.error:
        notice = f'<p class="error">{escape(state.error)}</p>'

    preview = ''
    if state.wikitext:
        try:
            html, _ = wiki_service.parse_wikitext(state.wikitext, state.domain)
            preview = html
        except UpstreamError as e:
            app.logger.warning(f'Preview failed for {state.username}: {e}')
            preview = f'<p>Preview unavailable: {escape(str(e))}</p>'

    return EDITOR_TEMPLATE.format(
        doctype=DOCTYPE,
        meta=META,
        header=HEADER,
        username=escape(state.username),
        domain=escape(state.domain),
        notice=notice,
        wikitext=escape(state.wikitext),
        preview=preview,
    )


@app.route('/editor', methods=['POST'])
def save_editor():
    if 'html' in request.form:
        wikitext = convert(request.form['html'])
    else:
        wikitext = request.form.get('wikitext', '')
    state.update(wikitext=wikitext.replace('\r\n', '\n'), error=None)
    return redirect('/editor')


@app.route('/api/convert', methods=['POST'])
def api_convert():
    body = get_json_body()
    if body is None:
        return json_error('Invalid JSON body', 400)

    html = body.get('html')
    if not html:
        return json_error('No HTML provided', 400)
    if not isinstance(html, str):
        return json_error('HTML must be a string', 400)

    return jsonify({'success': True, 'wikitext': convert(html)})


@app.route('/api/parse', methods=['POST'])
def api_parse():
    body = get_json_body()
    if body is None:
        return json_error('Invalid JSON body', 400)

    text = body.get('text')
    if not text:
        return json_error('No text provided', 400)
    if not isinstance(text, str):
        return json_error('Text must be a string', 400)

    domain = get_domain(body.get('domain'))
    if domain is None:
        return json_error('Invalid wiki domain', 400)

    try:
        html, modules = wiki_service.parse_wikitext(text, domain)
    except UpstreamError as e:
        app.logger.error(f'Parse failed on {domain}: {e}')
        return json_error(str(e), e.status)

    payload = {'success': True, 'html': html}
    if modules:
        payload['modulesLoaded'] = modules
    return jsonify(payload)


@app.route('/api/profile')
def api_profile():
    username = request.args.get('username', '').strip()
    if not username:
        return json_error('Username is required', 400)
    if not wiki_service.is_valid_username(username):
        return json_error('Invalid username', 400)

    domain = get_domain(request.args.get('domain'))
    if domain is None:
        return json_error('Invalid wiki domain', 400)

    state.update(loading=True)
    try:
        result = wiki_service.fetch_profile(username, domain)
    except UpstreamError as e:
        app.logger.error(f'Could not fetch profile {username}@{domain}: {e}')
        return json_error(str(e), e.status)
    finally:
        state.update(loading=False)

    if result.get('missing'):
        return jsonify({'success': True, 'missing': True})

    state.update(username=username, domain=domain, wikitext=result['wikitext'], error=None)
    return jsonify({'success': True, 'wikitext': result['wikitext']})


@app.route('/api/ai-edit', methods=['POST'])
@limiter.limit("10 per minute")
def api_ai_edit():
    body = get_json_body()
    if body is None:
        return json_error('Invalid JSON body', 400)

    original = body.get('originalWikitext')
    instruction = body.get('instruction')
    if not isinstance(original, str) or not original.strip():
        return json_error('Original wikitext is required', 400)
    if not isinstance(instruction, str) or not instruction.strip():
        return json_error('Edit instruction is required', 400)

    client = get_ai_client()
    if client is None:
        return json_error('AI editing requires a Gemini API key. Please add GEMINI_API_KEY to your .env file.', 400)

    selected = body.get('selectedText')
    prompt = ai_service.build_edit_prompt(original, instruction, selected if isinstance(selected, str) else None)

    try:
        wikitext = ai_service.generate_wikitext(client, ai_service.EDIT_SYSTEM_PROMPT, prompt, GEMINI_MODEL)
    except ai_service.AIServiceError as e:
        app.logger.error(f'Gemini API error: {e}')
        return json_error(f'AI service error: {e}', 500)

    return jsonify({'success': True, 'wikitext': wikitext})


@app.route('/api/generate-profile', methods=['POST'])
@limiter.limit("10 per minute")
def api_generate_profile():
    body = get_json_body()
    if body is None:
        return json_error('Invalid JSON body', 400)

    username = body.get('username')
    if not isinstance(username, str) or not username.strip():
        return json_error('Username is required', 400)

    profile = {k: v for k, v in body.items() if isinstance(v, str)}
    profile['username'] = username.strip()

    client = get_ai_client()
    if client is not None:
        try:
            wikitext = ai_service.generate_wikitext(
                client,
                ai_service.GENERATE_SYSTEM_PROMPT,
                ai_service.build_profile_prompt(profile),
                GEMINI_MODEL,
            )
            return jsonify({'wikitext': wikitext, 'source': 'ai'})
        except ai_service.AIServiceError as e:
            app.logger.warning(f'Gemini API error, using template: {e}')

    return jsonify({'wikitext': ai_service.generate_fallback_markup(profile), 'source': 'template'})


@app.route('/api/state', methods=['GET'])
def api_state():
    return jsonify(state.to_dict())


@app.route('/api/state', methods=['PUT'])
def api_update_state():
    body = get_json_body()
    if body is None:
        return json_error('Invalid JSON body', 400)

    fields = {k: v for k, v in body.items() if k in STATE_FIELDS}
    if any(not isinstance(v, str) for v in fields.values()):
        return json_error('State values must be strings', 400)
    if 'domain' in fields:
        fields['domain'] = get_domain(fields['domain'])
        if fields['domain'] is None:
            return json_error('Invalid wiki domain', 400)

    state.update(**fields)
    return jsonify(state.to_dict())


@app.route('/api/state', methods=['DELETE'])
def api_reset_state():
    state.reset()
    return jsonify(state.to_dict())


@app.errorhandler(Exception)
def handle_unexpected(e):
    if isinstance(e, HTTPException):
        return e
    app.logger.exception(f'Unhandled error on {request.path}')
    if request.path.startswith('/api/'):
        return json_error('Internal server error', 500)
    return Response(render_error('Something went wrong. Please try again.'), mimetype='text/html'), 500


@app.after_request
def log_response(response):
    access_logger.info(f'{request.remote_addr} - {request.method} {request.path} - {response.status_code}')
    return response


@app.after_request
def add_security_headers(response):
    response.headers['X-Content-Type-Options'] = 'nosniff'
    response.headers['X-Frame-Options'] = 'DENY'
    response.headers['Referrer-Policy'] = 'strict-origin-when-cross-origin'
    return response


if __name__ == '__main__':
    debug = os.environ.get('DEBUG', 'false').lower() == 'true'
    port = int(os.environ.get('PORT', '5000'))
    app.run(host='0.0.0.0', port=port, debug=debug)
