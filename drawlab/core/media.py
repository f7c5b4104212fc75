"""
URL helpers for content links (Google Drive files/folders, YouTube videos)
"""

import re
from urllib.parse import urlparse

_DRIVE_ID_PATTERNS = [
    r'/file/d/([a-zA-Z0-9_-]+)',
    r'/folders/([a-zA-Z0-9_-]+)',
    r'id=([a-zA-Z0-9_-]+)',
    r'/d/([a-zA-Z0-9_-]+)',
    r'^([a-zA-Z0-9_-]{25,})',
]

_YOUTUBE_ID_PATTERN = r'(?:youtube\.com/watch\?v=|youtu\.be/|youtube\.com/embed/)([a-zA-Z0-9_-]{11})'

DANGEROUS_PATTERNS = [
    'javascript:',
    'data:text/html',
    '<script',
    'onerror=',
    'onclick=',
]


def sanitize_url(url):
    """
    リンクURLをサニタイズ

    Returns:
        str or None: the stripped URL, or None when empty or unsafe
    """
    if not url:
        return None

    url = url.strip()
    if url.lower() in ['null', 'none', '']:
        return None

    url_lower = url.lower()
    for pattern in DANGEROUS_PATTERNS:
        if pattern in url_lower:
            return None

    # 相対パスはアップロード済みファイルのみ許可
    if url.startswith('/'):
        if url.startswith('/uploads/') and '..' not in url:
            return url
        return None

    parsed = urlparse(url)
    if parsed.scheme not in ['http', 'https'] or not parsed.netloc:
        return None
    return url


def is_google_drive_url(url):
    if not url:
        return False
    return 'drive.google.com' in url or 'docs.google.com' in url


def extract_google_drive_file_id(url):
    if not url:
        return None
    for pattern in _DRIVE_ID_PATTERNS:
        match = re.search(pattern, url)
        if match:
            return match.group(1)
    return None


def google_drive_preview_url(url):
    file_id = extract_google_drive_file_id(url)
    if not file_id:
        return url
    if '/folders/' in url:
        return f'https://drive.google.com/embeddedfolderview?id={file_id}#list'
    return f'https://drive.google.com/file/d/{file_id}/preview'


def google_drive_download_url(url):
    file_id = extract_google_drive_file_id(url)
    if not file_id:
        return url
    return f'https://drive.google.com/uc?export=download&id={file_id}'


def google_drive_thumbnail_url(url, size=400):
    file_id = extract_google_drive_file_id(url)
    if not file_id:
        return url
    return f'https://drive.google.com/thumbnail?id={file_id}&sz=s{size}'


def is_youtube_url(url):
    if not url:
        return False
    return 'youtube.com' in url or 'youtu.be' in url


def extract_youtube_video_id(url):
    if not url:
        return None
    match = re.search(_YOUTUBE_ID_PATTERN, url)
    return match.group(1) if match else None


def youtube_embed_url(url):
    video_id = extract_youtube_video_id(url)
    if not video_id:
        return url
    return f'https://www.youtube.com/embed/{video_id}'


def media_links(url):
    """Preview/download links for a stored content URL"""
    if not url:
        return {}
    if is_youtube_url(url):
        return {'embed_url': youtube_embed_url(url)}
    if is_google_drive_url(url):
        return {
            'preview_url': google_drive_preview_url(url),
            'download_url': google_drive_download_url(url),
            'thumbnail_url': google_drive_thumbnail_url(url),
        }
    return {'download_url': url}
