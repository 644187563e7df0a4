import threading

import requests


def tls_get(url, timeout=5):
    """GET against the callback listener, which uses a self-signed certificate."""
    return requests.get(url, verify=False, timeout=timeout)


class FakeBrowser:
    """Stands in for webbrowser.open: follows the redirect Slack would send."""

    def __init__(self, callback_url):
        self.callback_url = callback_url
        self.opened = []
        self.responses = []
        self.thread = None

    def __call__(self, auth_url):
        self.opened.append(auth_url)
        self.thread = threading.Thread(target=self._follow)
        self.thread.daemon = True
        self.thread.start()
        return True

    def _follow(self):
        self.responses.append(tls_get(self.callback_url))
