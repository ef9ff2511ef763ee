import json
import logging
import os


DEFAULT_STATE = {
    'username': '',
    'domain': 'meta.wikimedia.org',
    'wikitext': '',
}

# not written to disk
UI_FLAGS = {
    'loading': False,
    'error': None,
}

logger = logging.getLogger('wikiprofile.state')


class ProfileState:
    """Username, domain and current wikitext, kept across restarts in a JSON file."""

    def __init__(self, path):
        self.path = path
        self.values = dict(DEFAULT_STATE)
        self.flags = dict(UI_FLAGS)
        self.loaded = False

    @property
    def username(self):
        return self.values['username']

    @property
    def domain(self):
        return self.values['domain']

    @property
    def wikitext(self):
        return self.values['wikitext']

    @property
    def loading(self):
        return self.flags['loading']

    @property
    def error(self):
        return self.flags['error']

    def load(self):
        self.values = dict(DEFAULT_STATE)
        if os.path.exists(self.path):
            try:
                with open(self.path, 'r', encoding='utf-8') as f:
                    stored = json.load(f)
                for key in DEFAULT_STATE:
                    if isinstance(stored.get(key), str):
                        self.values[key] = stored[key]
            except (OSError, ValueError, AttributeError) as e:
                logger.warning(f'Could not read state file {self.path}: {e}')
        self.loaded = True
        return self

    def save(self):
        directory = os.path.dirname(self.path)
        if directory:
            os.makedirs(directory, exist_ok=True)
        tmp_path = f'{self.path}.tmp'
        with open(tmp_path, 'w', encoding='utf-8') as f:
            json.dump(self.values, f, ensure_ascii=False, indent=2)
        os.replace(tmp_path, self.path)

    def update(self, **fields):
        changed = False
        for key, value in fields.items():
            if key in self.values:
                if self.values[key] != value:
                    self.values[key] = value
                    changed = True
            elif key in self.flags:
                self.flags[key] = value
            else:
                raise KeyError(key)
        if changed:
            self.save()
        return changed

    def reset(self):
        self.flags['error'] = None
        return self.update(username='', wikitext='')

    def to_dict(self):
        return {**self.values, **self.flags}
