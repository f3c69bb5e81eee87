"""Browser client for live reload and its injection into served HTML."""

import re

CLIENT_SCRIPT_PATH = "/__livereload.js"
SOCKET_PATH = "/__livereload"
CLIENT_MARKER = "data-livereload-client"

_CLIENT_TEMPLATE = """
(function () {
  // Guard against double injection
  if (window.__LIVERELOAD__) return;
  window.__LIVERELOAD__ = true;

  var NOTIFY = __NOTIFY__;
  var scheme = location.protocol === 'https:' ? 'wss://' : 'ws://';

  function notify(message, level) {
    if (!NOTIFY) return;
    var box = document.getElementById('__livereload_notify');
    if (!box) {
      box = document.createElement('div');
      box.id = '__livereload_notify';
      box.style.cssText = 'position:fixed;top:0;right:0;z-index:2147483647;padding:12px 16px;' +
        'font:14px sans-serif;color:#fff;background:#1b1b1b;border-bottom-left-radius:5px;';
      document.body.appendChild(box);
    }
    box.style.background = level === 'error' ? '#a61b1b' : '#1b1b1b';
    box.textContent = message;
    clearTimeout(box.__timer);
    box.__timer = setTimeout(function () { box.remove(); }, 3000);
  }

  function injectCss(path) {
    var links = document.querySelectorAll('link[rel="stylesheet"]');
    var found = false;
    links.forEach(function (link) {
      var href = link.getAttribute('href') || '';
      if (href.split('?')[0].replace(/^\\.?\\//, '') === path || href.indexOf(path) !== -1) {
        link.href = href.split('?')[0] + '?livereload=' + Date.now();
        found = true;
      }
    });
    if (!found) location.reload();
  }

  function connect() {
    var socket = new WebSocket(scheme + location.host + '__SOCKET_PATH__');
    socket.onmessage = function (message) {
      var event = JSON.parse(message.data);
      if (event.event_type === 'reload') {
        notify('Reloading...');
        location.reload();
      } else if (event.event_type === 'inject_css') {
        notify('Injected: ' + event.data.path);
        injectCss(event.data.path);
      } else if (event.event_type === 'notify') {
        notify(event.data.message, event.data.level);
      } else if (event.event_type === 'connection_established') {
        notify('Connected to live-reload server');
      }
    };
    // Reconnect after the server restarts
    socket.onclose = function () { setTimeout(connect, 1000); };
  }

  connect();
})();
"""


def minify_script(script: str) -> str:
    """Strip comments, indentation and blank lines."""
    lines = []
    for line in script.splitlines():
        stripped = line.strip()
        if not stripped or stripped.startswith("//"):
            continue
        lines.append(stripped)
    return "\n".join(lines)


def render_client_script(notify: bool = False, minify: bool = False) -> str:
    """Render the browser client with the configured toggles."""
    script = _CLIENT_TEMPLATE.replace("__NOTIFY__", "true" if notify else "false").replace(
        "__SOCKET_PATH__", SOCKET_PATH
    )
    return minify_script(script) if minify else script.lstrip()


def inject_client(html: str) -> str:
    """
    Insert the client script tag before the closing body tag.

    Documents without ``</body>`` get the tag appended. Documents that already
    carry the tag are returned unchanged.
    """
    if CLIENT_MARKER in html:
        return html

    tag = f'<script src="{CLIENT_SCRIPT_PATH}" {CLIENT_MARKER} async></script>'
    matches = list(re.finditer(r"</body\s*>", html, flags=re.IGNORECASE))
    if not matches:
        return html + tag

    position = matches[-1].start()
    return html[:position] + tag + "\n" + html[position:]
