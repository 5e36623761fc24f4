# phishing_detector/services/alert_renderer.py
"""
Presentation payloads for the host: block interstitial, warning banner,
badge and notification. The host injects these; nothing here decides
anything.
"""

from html import escape
from typing import Any, Dict, List

from .decision_policy import Action

BADGE_RED = '#f44336'
BADGE_ORANGE = '#ff9800'
BADGE_GREEN = '#4CAF50'


class AlertRenderer:

    def __init__(self, warn_threshold: int = 30, block_threshold: int = 60,
                 banner_timeout_ms: int = 10000):
        self.warn_threshold = warn_threshold
        self.block_threshold = block_threshold
        self.banner_timeout_ms = banner_timeout_ms

    def block_page(self, domain: str, risk_score: int) -> str:
        """Full-page interstitial that replaces the document"""
        domain = escape(domain)
        return f"""<style>
  body {{ font-family: Arial, sans-serif; background: {BADGE_RED}; color: white;
         text-align: center; padding: 50px; margin: 0; }}
  .warning {{ background: white; color: #333; padding: 30px; border-radius: 10px;
             max-width: 600px; margin: 0 auto; box-shadow: 0 4px 20px rgba(0,0,0,0.3); }}
  .risk-score {{ font-size: 24px; font-weight: bold; color: {BADGE_RED}; }}
  button {{ background: {BADGE_GREEN}; color: white; border: none; padding: 10px 20px;
           border-radius: 5px; cursor: pointer; font-size: 16px; margin: 10px; }}
</style>
<div class="warning" id="phishing-block-page">
  <div class="blocked-icon">🛡️</div>
  <h1>⚠️ PHISHING SITE BLOCKED</h1>
  <p><strong>This website has been identified as a potential phishing site.</strong></p>
  <p>Domain: <code>{domain}</code></p>
  <p class="risk-score">Risk Score: {int(risk_score)}/100</p>
  <p>This site appears to be impersonating a legitimate service to steal your personal information.</p>
  <p><strong>For your safety, access has been blocked by Phishing Detector.</strong></p>
  <button onclick="history.back()">← Go Back</button>
  <button onclick="window.close()">Close Tab</button>
</div>"""

    def warning_banner(self, domain: str, risk_score: int) -> str:
        """Dismissible top banner that removes itself after banner_timeout_ms"""
        domain = escape(domain)
        return f"""<div id="phishing-warning">
  <div style="position: fixed; top: 0; left: 0; right: 0; z-index: 2147483647;
              background: linear-gradient(135deg, {BADGE_ORANGE}, #f57c00); color: white;
              padding: 15px; text-align: center; font-family: Arial, sans-serif;
              box-shadow: 0 2px 10px rgba(0,0,0,0.3);">
    <span style="font-size: 20px; margin-right: 10px;">⚠️</span>
    <strong>SUSPICIOUS SITE DETECTED</strong><br>
    <small>Domain: {domain} | Risk Score: {int(risk_score)}/100</small>
    <button onclick="this.parentElement.parentElement.remove()">Dismiss</button>
  </div>
  <script>
    setTimeout(function () {{
      var el = document.getElementById('phishing-warning');
      if (el) {{ el.remove(); }}
    }}, {int(self.banner_timeout_ms)});
  </script>
</div>"""

    def notification(self, domain: str, risk_score: int, action: Action) -> Dict[str, Any]:
        blocked = action == Action.BLOCK
        if blocked:
            detail = 'This phishing site has been blocked for your protection.'
            buttons: List[Dict[str, str]] = [{'title': 'View Details'}, {'title': 'Report False Positive'}]
        else:
            detail = 'This site shows suspicious characteristics. Please proceed with caution.'
            buttons = [{'title': 'View Details'}, {'title': 'Continue Anyway'}]

        return {
            'type': 'basic',
            'title': '🚫 Phishing Site Blocked!' if blocked else '⚠️ Suspicious Site Detected!',
            'message': f"Domain: {domain}\nRisk Score: {risk_score}/100\n\n{detail}",
            'priority': 2 if blocked else 1,
            'require_interaction': blocked,
            'buttons': buttons,
        }

    def badge(self, risk_score: int) -> Dict[str, str]:
        if risk_score > self.block_threshold:
            return {'text': '🚫', 'color': BADGE_RED}
        if risk_score > self.warn_threshold:
            return {'text': '⚠', 'color': BADGE_ORANGE}
        if risk_score > 0:
            return {'text': '✓', 'color': BADGE_GREEN}
        return {'text': '', 'color': BADGE_GREEN}

    def risk_label(self, risk_score: int) -> str:
        if risk_score <= 20:
            return 'Safe Site'
        if risk_score <= self.warn_threshold:
            return 'Low Risk'
        if risk_score <= self.block_threshold:
            return 'Medium Risk - Be Cautious'
        return 'High Risk - Potential Phishing'
