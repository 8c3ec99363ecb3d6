import base64
import gzip
import json
import zlib
from typing import Any, Dict, Iterable, Tuple

import brotli

# --- Sample documents ---
SAMPLE_JSON = {
    "slideshow": {
        "author": "Yours Truly",
        "date": "date of publication",
        "slides": [
            {"title": "Wake up to WonderWidgets!", "type": "all"},
            {
                "items": ["Why <em>WonderWidgets</em> are great", "Who <em>buys</em> WonderWidgets"],
                "title": "Overview",
                "type": "all",
            },
        ],
        "title": "Sample Slide Show",
    }
}

SAMPLE_XML = """<?xml version='1.0' encoding='us-ascii'?>

<!--  A SAMPLE set of slides  -->

<slideshow
    title="Sample Slide Show"
    date="Date of publication"
    author="Yours Truly"
    >

    <!-- TITLE SLIDE -->
    <slide type="all">
      <title>Wake up to WonderWidgets!</title>
    </slide>

    <!-- OVERVIEW -->
    <slide type="all">
        <title>Overview</title>
        <item>Why <em>WonderWidgets</em> are great</item>
        <item/>
        <item>Who <em>buys</em> WonderWidgets</item>
    </slide>

</slideshow>
"""

SAMPLE_HTML = """<!DOCTYPE html>
<html>
  <head>
  </head>
  <body>
      <h1>Herman Melville - Moby-Dick</h1>

      <div>
        <p>
          Availing himself of the mild, summer-cool weather that now reigned in these latitudes,
          and in preparation for the peculiarly active pursuits shortly to be anticipated, Perth,
          the begrimed, blistered old blacksmith, had not removed his portable forge to the hold
          again, after concluding his contributory work for Ahab's leg, but still retained it on
          deck, fast lashed to ringbolts by the foremast.
        </p>
      </div>
  </body>
</html>
"""

SAMPLE_UTF8_HTML = """<!DOCTYPE html>
<html>
<head>
  <meta http-equiv="content-type" content="text/html; charset=utf-8" />
</head>
<body>
<h1>Unicode Demo</h1>

<pre>
Mathematics and Sciences:

  ∮ E⋅da = Q,  n → ∞, ∑ f(i) = ∏ g(i), ∀x∈ℝ: ⌈x⌉ = −⌊−x⌋, α ∧ ¬β = ¬(¬α ∨ β)

Greek:        Σὲ γνωρίζω ἀπὸ τὴν κόψη
Georgian:     გთხოვთ ახლავე გაიაროთ რეგისტრაცია
Russian:      Зарегистрируйтесь сейчас на Десятую Международную Конференцию
Thai:         ๏ แผ่นดินฮั่นเสื่อมโทรมแสนสังเวช
Amharic:      ሰማይ አይታረስ ንጉሥ አይከሰስ።
Runes:        ᚻᛖ ᚳᚹᚫᚦ ᚦᚫᛏ ᚻᛖ ᛒᚢᛞᛖ ᚩᚾ ᚦᚫᛗ
Braille:      ⡌⠁⠧⠑ ⠼⠁⠒  ⡍⠜⠇⠑⠹⠰⠎ ⡣⠕⠌
</pre>
</body>
</html>
"""

ROBOTS_TXT = """User-agent: *
Disallow: /deny
"""

DENY_TXT = """
          .-''''''-.
        .' _      _ '.
       /   O      O   \\
      :                :
      |                |
      :       __       :
       \\  .-"`  `"-.  /
        '.          .'
          '-......-'
     YOU SHOULDN'T BE HERE
"""

# --- Content codings ---
CONTENT_CODINGS = {
    "gzip": gzip.compress,
    "deflate": zlib.compress,
    "br": brotli.compress,
}


def pretty_json(payload: Any) -> bytes:
    return json.dumps(payload, indent=2, ensure_ascii=False).encode()


def encode_body(payload: Dict[str, Any], coding: str) -> bytes:
    """Pretty-print ``payload`` and compress it with the named content coding."""
    return CONTENT_CODINGS[coding](pretty_json(payload))


def self_describing_json(fields: Dict[str, Any]) -> bytes:
    """Encode ``fields`` with a ``Content-Length`` entry equal to the encoded size.

    The length is re-measured until writing it into the document no longer
    changes the document's own size.
    """
    body = dict(fields)
    length = 0
    while True:
        body["Content-Length"] = str(length)
        encoded = pretty_json(body)
        if len(encoded) == length:
            return encoded
        length = len(encoded)


def decode_base64(value: str) -> bytes:
    """Decode standard base64, falling back to the URL-safe alphabet.

    Raises ``ValueError`` when neither alphabet decodes ``value``.
    """
    value = value.strip()
    try:
        return base64.b64decode(value, validate=True)
    except ValueError:
        return base64.b64decode(value, altchars=b"-_", validate=True)


def links_page(n: int, offset: int, href) -> str:
    """An HTML page of ``n`` links where ``offset`` is the current page."""
    links = []
    for i in range(n):
        if i == offset:
            links.append(f"{i} ")
        else:
            links.append(f"<a href='{href(i)}'>{i}</a> ")
    return f"<html><head><title>Links</title></head><body>{''.join(links)}</body></html>"


def header_pairs(args: Dict[str, Any]) -> Iterable[Tuple[str, str]]:
    for key, value in args.items():
        for item in value if isinstance(value, list) else [value]:
            yield key, item
