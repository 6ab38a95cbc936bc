"""Browser bootstrap runtime.

A small inline script placed after the payloads and before the chunk
scripts. It reads the three payloads with the same rules the Python
client uses (``perch.client.bootstrap``), decides between hydrating and
a cold start, and publishes the decision before application code loads::

    window.__perch = {mode, queries, styleIds, errors}
    document: "perch:bootstrap" event, same object as detail

Any missing or malformed payload means cold start with empty caches.
"""

from perch.ssr.serializer import FLAG_ID, FLAG_VERSION, STATE_ID, STYLE_IDS_ID


def bootstrap_snippet(root_id: str = "root") -> str:
    """Return the runtime ``<script>`` for a document rooted at *root_id*."""
    return f"""<script data-perch="bootstrap">
(function() {{
  if (window.__perch) return;
  const FLAG_VERSION = {FLAG_VERSION};
  const errors = [];

  function read(id) {{
    const el = document.getElementById(id);
    if (!el) {{
      errors.push({{ id: id, reason: "missing" }});
      return null;
    }}
    try {{
      const value = JSON.parse(el.textContent || "");
      if (value && typeof value === "object" && !Array.isArray(value)) return value;
      errors.push({{ id: id, reason: "not an object" }});
    }} catch (err) {{
      errors.push({{ id: id, reason: String(err) }});
    }}
    return null;
  }}

  const flag = read("{FLAG_ID}");
  const state = read("{STATE_ID}");
  const styles = read("{STYLE_IDS_ID}");

  const flagOk = !!flag && flag.version === FLAG_VERSION && flag.isSSR === true;
  const stateOk = !!state && Array.isArray(state.queries);
  const stylesOk = !!styles && Array.isArray(styles.ids);
  const root = document.getElementById("{root_id}");
  const hydrate = flagOk && stateOk && stylesOk && !!root;

  const perch = {{
    mode: hydrate ? "hydrate" : "cold-start",
    root: root,
    queries: hydrate ? state.queries : [],
    styleIds: hydrate ? styles.ids : [],
    refetchOnWindowFocus: false,
    errors: errors,
  }};
  window.__perch = perch;
  document.dispatchEvent(new CustomEvent("perch:bootstrap", {{ detail: perch }}));
}})();
</script>"""
