HTML_TEMPLATE = """<!DOCTYPE html>
<html lang="en">
<head>
<meta charset="utf-8">
<meta name="viewport" content="width=device-width, initial-scale=1">
<meta name="file2html-layers" content="{{LAYER_COUNT}}">
<title>{{FILE_NAME}}</title>
<style>
  body { font-family: system-ui, -apple-system, "Segoe UI", sans-serif; margin: 0; background: #f4f5f7; color: #222; }
  main { max-width: 760px; margin: 40px auto; background: #fff; padding: 28px 32px; border-radius: 8px;
         box-shadow: 0 1px 4px rgba(0, 0, 0, .12); }
  h1 { font-size: 1.4em; margin-top: 0; word-break: break-all; }
  .meta { color: #555; }
  .password-display { font-family: ui-monospace, Menlo, Consolas, monospace; background: #eef; padding: 2px 6px;
                      border-radius: 4px; user-select: all; }
  button, a.button { display: inline-block; margin: 8px 8px 8px 0; padding: 8px 16px; border: 0; border-radius: 4px;
                     background: #2d6cdf; color: #fff; font-size: 1em; cursor: pointer; text-decoration: none; }
  textarea { width: 100%; height: 120px; font-family: ui-monospace, Menlo, Consolas, monospace; font-size: .8em; }
  #status { color: #2d6cdf; min-height: 1.2em; }
</style>
</head>
<body>
<main>
  <h1>{{FILE_NAME}}</h1>
  <p class="meta">Size: {{FILE_SIZE}} &middot; Password: {{PASSWORD}}</p>
  {{PASSWORD_DISPLAY}}
  {{INSTRUCTIONS}}
  <p>
    <a class="button" id="download" href="#" download="{{DOWNLOAD_ZIP_NAME}}">Download {{DOWNLOAD_ZIP_NAME}}</a>
    <button type="button" id="copy">Copy Base64</button>
  </p>
  <p id="status"></p>
  <details>
    <summary>Base64 data</summary>
    <textarea id="payload" readonly>{{ZIP_BASE64}}</textarea>
  </details>
</main>
<script>
(function () {
  var payload = document.getElementById("payload").value.replace(/\\s+/g, "");
  var status = document.getElementById("status");
  function toBytes(b64) {
    var raw = atob(b64);
    var out = new Uint8Array(raw.length);
    for (var i = 0; i < raw.length; i++) { out[i] = raw.charCodeAt(i); }
    return out;
  }
  document.getElementById("download").addEventListener("click", function (ev) {
    ev.preventDefault();
    try {
      var blob = new Blob([toBytes(payload)], { type: "application/octet-stream" });
      var url = URL.createObjectURL(blob);
      var a = document.createElement("a");
      a.href = url;
      a.download = this.getAttribute("download");
      document.body.appendChild(a);
      a.click();
      document.body.removeChild(a);
      setTimeout(function () { URL.revokeObjectURL(url); }, 1000);
      status.textContent = "Download started.";
    } catch (e) {
      status.textContent = "Decoding failed: " + e;
    }
  });
  document.getElementById("copy").addEventListener("click", function () {
    if (navigator.clipboard) {
      navigator.clipboard.writeText(payload).then(function () { status.textContent = "Base64 copied."; });
    } else {
      var area = document.getElementById("payload");
      area.select();
      document.execCommand("copy");
      status.textContent = "Base64 copied.";
    }
  });
})();
</script>
</body>
</html>
"""
