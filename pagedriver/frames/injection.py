"""Scripts that run as if the loaded page had authored them.

Sandboxed evaluation (see sandbox.py) cannot create symbols the page itself
can see. Code added here goes through a ``<script>`` element appended to the
frame's document, so it shares identity with page-defined symbols.
"""
from __future__ import annotations
import json
from typing import Optional

from ..config import pcfg


def script_tag_source(source: Optional[str] = None, url: Optional[str] = None) -> str:
    """Expression appending a script element with inline ``source`` or a ``src`` url.

    With a url, the expression evaluates to a promise settled when the script loads.
    """
    if url is not None:
        return (
            "new Promise(function (resolve, reject) {"
            " var s = document.createElement('script');"
            " s.setAttribute('type', 'text/javascript');"
            " s.setAttribute('src', %s);"
            " s.addEventListener('load', function () { resolve(true); }, true);"
            " s.addEventListener('error', function () { reject(new Error('failed to load ' + %s)); }, true);"
            " document.documentElement.appendChild(s);"
            "})" % (json.dumps(url), json.dumps(url))
        )
    return (
        "(function () {"
        " var s = document.createElement('script');"
        " s.setAttribute('type', 'text/javascript');"
        " s.textContent = %s;"
        " document.documentElement.appendChild(s);"
        " return true;"
        "})()" % json.dumps(source or "")
    )


def callback_bridge_source(
    function_name: str = pcfg.CALLBACK_FUNCTION,
    event_name: str = pcfg.CALLBACK_EVENT,
    binding: str = pcfg.CALLBACK_BINDING,
) -> str:
    """Content-side half of on_callback.

    ``window.callPhantom(value)`` dispatches a custom event; the listener
    forwards it to the engine binding and the returned promise is settled by
    ``window.__pagedriverSettle`` once the controller's handler has run.
    """
    return """(function () {
    if (window.__pagedriverSettle) return;
    var pending = {};
    var seq = 0;
    window.__pagedriverSettle = function (id, ok, value) {
        var p = pending[id];
        if (!p) return;
        delete pending[id];
        if (ok) p.resolve(value); else p.reject(new Error(value));
    };
    window.addEventListener(%(event)s, function (event) {
        var call = event.detail;
        var send = window[%(binding)s];
        if (typeof send !== 'function') {
            window.__pagedriverSettle(call.id, true, null);
            return;
        }
        send(JSON.stringify({id: call.id, value: call.value === undefined ? null : call.value}));
    }, true);
    window[%(function)s] = function () {
        var arg = (arguments.length ? arguments[0] : null);
        var id = ++seq;
        var result = new Promise(function (resolve, reject) {
            pending[id] = {resolve: resolve, reject: reject};
        });
        window.dispatchEvent(new CustomEvent(%(event)s, {detail: {id: id, value: arg}}));
        return result;
    };
})();""" % {
        "event": json.dumps(event_name),
        "binding": json.dumps(binding),
        "function": json.dumps(function_name),
    }


def settle_callback_source(call_id: int, ok: bool, value) -> str:
    """Expression settling the content-side promise of one callPhantom() call."""
    return "window.__pagedriverSettle && window.__pagedriverSettle(%d, %s, %s)" % (
        int(call_id),
        json.dumps(bool(ok)),
        json.dumps(value, default=str),
    )
