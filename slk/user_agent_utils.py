"""
User-Agent utility functions for the HTTP calls slk makes to Slack.
"""

import sys
import platform
import ssl


def _get_python_version():
    """
    Get the Python version string.

    Returns:
        str: Python version in format "python-X.Y.Z"
    """
    return 'python-%d.%d.%d' % (
        sys.version_info.major,
        sys.version_info.minor,
        sys.version_info.micro
    )


def _get_os_info():
    """
    Get the operating system information string.

    Returns:
        str: Operating system identifier, e.g. "debian-12", "macos-14.0" or "windows-10"
    """
    os_str = platform.system().lower()
    try:
        if os_str == 'linux' and hasattr(platform, 'freedesktop_os_release'):
            os_info = platform.freedesktop_os_release()
            return '%s-%s' % (os_info.get('ID', 'linux'), os_info.get('VERSION_ID', 'unknown'))
        if os_str == 'darwin':
            mac_ver = platform.mac_ver()[0]
            if mac_ver:
                return 'macos-%s' % mac_ver
        elif os_str == 'windows':
            win_ver = platform.win32_ver()[0]
            if win_ver:
                return 'windows-%s' % win_ver
    except OSError:
        # No os-release file available.
        pass
    return os_str


def _get_ssl_version():
    """
    Get the OpenSSL version string if available.

    Returns:
        str or None: SSL version in format "openssl-X.Y.Z"
    """
    ssl_info = getattr(ssl, 'OPENSSL_VERSION_INFO', None)
    if not ssl_info:
        return None
    return 'openssl-%d.%d.%d' % (ssl_info[0], ssl_info[1], ssl_info[2])


def build_user_agent(library_prefix, library_version):
    """
    Build a User-Agent string with environment information.

    Parameters:
        library_prefix (str): The library identifier prefix (e.g., "slk-py")
        library_version (str): The library version string

    Returns:
        str: User-Agent like "slk-py/0.3.0;python-3.11.2;debian-12;openssl-3.0.0"
    """
    parts = [
        '%s/%s' % (library_prefix, library_version),
        _get_python_version(),
        _get_os_info(),
    ]

    ssl_version = _get_ssl_version()
    if ssl_version:
        parts.append(ssl_version)

    return ';'.join(parts)
