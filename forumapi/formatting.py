import re

from blinker import Namespace
from flask import current_app
from markupsafe import Markup, escape

_signals = Namespace()

# Sent with the post as sender whenever a moderated post has to be pushed to readers.
post_published = _signals.signal('post-published')

_URL_RE = re.compile(r'(https?://[^\s<]+)')
_SLUG_RE = re.compile(r'[^a-z0-9]+')


def slugify(text, max_length=60):
    slug = _SLUG_RE.sub('-', (text or '').lower()).strip('-')
    return slug[:max_length].rstrip('-') or 'discussion'


def discussion_url(folder_key, discussion_id, title):
    return f'/{folder_key}/{discussion_id}/{slugify(title)}'


def format_front_page_entry(entry):
    entry['unread_count'] = max(entry['post_count'] - entry['last_post_read_count'], 0)
    entry['url'] = discussion_url(entry['folder_key'], entry['discussion_id'], entry['title'])
    return entry


def format_front_page_entries(entries):
    for entry in entries:
        format_front_page_entry(entry)
    return entries


class PostFormatter:
    """Turns the plain text of a post into the HTML shown to readers."""

    def apply_post_formatting(self, text, discussion=None):
        paragraphs = re.split(r'\n\s*\n', (text or '').replace('\r\n', '\n').strip())
        html = []
        for paragraph in paragraphs:
            if not paragraph:
                continue
            lines = [self._linkify(escape(line)) for line in paragraph.split('\n')]
            html.append('<p>' + '<br />'.join(lines) + '</p>')
        return Markup(''.join(html))

    def _linkify(self, escaped_line):
        # URLs are matched on already-escaped text, so "&amp;" stays inside the href.
        return _URL_RE.sub(r'<a href="\1" rel="nofollow noopener" target="_blank">\1</a>', str(escaped_line))


class PostProcessor:

    def publish_post(self, post):
        current_app.logger.info(f"Publishing post {post.id} in discussion {post.discussion_id}")
        post_published.send(post)


post_formatter = PostFormatter()
post_processor = PostProcessor()
