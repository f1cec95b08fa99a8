import json
from typing import Any

DEFAULT_RUNTIME = "./gpt-vis.min.js"


def escape_options(options: Any) -> str:
    """
    JSON-encode chart options for inlining in a <script> block.
    Only < and > are escaped (to \\u003c / \\u003e), which is enough to keep
    a "</script>" inside the data from closing the block. Quotes and & are
    left alone.
    """
    text = json.dumps(options, ensure_ascii=False, separators=(",", ":"))
    return text.replace("<", "\\u003c").replace(">", "\\u003e")


def build_chart_page(options: Any, runtime_src: str = DEFAULT_RUNTIME) -> str:
    chart_config = escape_options(options)
    return f"""<!DOCTYPE html>
<html lang="en">
  <head>
    <meta charset="UTF-8" />
    <meta name="viewport" content="width=device-width, initial-scale=1.0" />
    <title>gpt-vis chart</title>
    <!-- mapbox-gl CSS -->
    <link href="https://unpkg.com/mapbox-gl@2/dist/mapbox-gl.css" rel="stylesheet" />
    <!-- maplibre-gl CSS -->
    <link href="https://unpkg.com/maplibre-gl@2/dist/maplibre-gl.css" rel="stylesheet" />
  </head>

  <body>
    <div
      id="container"
      style="width: 800px; height: 500px; margin: 24px auto;"
    ></div>

    <!-- React -->
    <script crossorigin src="https://unpkg.com/react@18/umd/react.production.min.js"></script>
    <script crossorigin src="https://unpkg.com/react-dom@18/umd/react-dom.production.min.js"></script>
    <!-- lodash -->
    <script src="https://unpkg.com/lodash@4/lodash.min.js"></script>
    <!-- mapbox-gl -->
    <script src="https://unpkg.com/mapbox-gl@2/dist/mapbox-gl.js"></script>
    <!-- maplibre-gl -->
    <script src="https://unpkg.com/maplibre-gl@2/dist/maplibre-gl.js"></script>

    <!-- gpt-vis runtime -->
    <script src="{runtime_src}"></script>

    <script>
      window.addEventListener('load', function() {{
        // React 18 UMD builds do not always land on window
        if (typeof React !== 'undefined' && !window.React) {{
          window.React = React;
        }}
        if (typeof ReactDOM !== 'undefined' && !window.ReactDOM) {{
          window.ReactDOM = ReactDOM;
        }}
        var options = {chart_config};

        if (!window.React || !window.ReactDOM) {{
          console.error('React or ReactDOM is not loaded');
          return;
        }}
        if (!window._) {{
          console.error('lodash is not loaded');
          return;
        }}

        // the runtime exposes either window.GPTVis or window.GptVis
        var gptVis = window.GPTVis || window.GptVis;
        if (gptVis && typeof gptVis.render === "function") {{
          gptVis.render("#container", options);
        }} else {{
          console.error('gpt-vis is not loaded or has no render method');
          console.log('available globals:', {{
            React: !!window.React,
            ReactDOM: !!window.ReactDOM,
            _: !!window._,
            GPTVis: !!window.GPTVis,
            GptVis: !!window.GptVis
          }});
        }}
      }});
    </script>
  </body>
</html>"""
