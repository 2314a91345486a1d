# src/rscscan/utils/remediation.py
"""
Remediation text for completed, vulnerable scans.
"""

from typing import Dict, List

CVE_ID = "CVE-2025-55182"

PATCHED_PACKAGES = {
    "next": "15.2.6",
    "react": "19.1.2",
    "react-dom": "19.1.2",
}

FRAMEWORK_NAMES = {
    "nextjs": "Next.js",
    "remix": "Remix",
}


def result_message(vulnerable, uses_rsc, framework=None, detected_version=None) -> str:
    if vulnerable:
        detail = " ".join(part for part in (
            f"Detected framework: {framework}" if framework else "",
            f"v{detected_version}" if detected_version else "",
        ) if part)
        return f"VULNERABLE: Site is affected by React2Shell ({CVE_ID}). {detail}".strip()
    if uses_rsc:
        return "Site uses RSC but appears to be patched or protected."
    return "Site does not appear to use React Server Components. Not vulnerable."


def _upgrade_lines() -> List[str]:
    return [f"- {name} to version {version} or higher" for name, version in PATCHED_PACKAGES.items()]


def manual_steps(framework=None) -> List[str]:
    steps = [f'Update "{name}" to "^{version}" or higher in package.json' for name, version in PATCHED_PACKAGES.items()]
    if framework == "remix":
        steps.append('Update every "@remix-run/*" package to its latest release')
    steps += [
        "Run: npm install",
        "Run: npm run build",
        "Redeploy the application and re-run this scan to confirm the fix",
    ]
    return steps


def generate_prompt(url: str, framework=None, detected_version=None, confidence=None,
                    error_signature=None) -> Dict[str, object]:
    framework_name = FRAMEWORK_NAMES.get(framework, "React Server Components")
    version_note = f" (detected version {detected_version})" if detected_version else ""
    evidence = []
    if error_signature:
        evidence.append(f"Scanner signature: {error_signature}")
    if confidence:
        evidence.append(f"Detection confidence: {confidence}")

    lines = [
        f"My {framework_name} application{version_note} at {url} is vulnerable to {CVE_ID} (React2Shell), "
        "a critical remote code execution vulnerability in React Server Components.",
        "",
        "Please update the following dependencies in package.json:",
        *_upgrade_lines(),
        "",
        "Then:",
        "1. Run npm install",
        "2. Run npm run build to verify everything compiles",
        "3. Fix any breaking changes introduced by the upgrade",
    ]
    if evidence:
        lines += ["", *evidence]

    short_prompt = (
        f"Fix {CVE_ID} (React2Shell): upgrade "
        + ", ".join(f"{name} to >={version}" for name, version in PATCHED_PACKAGES.items())
        + ", then run npm install and npm run build."
    )
    return {
        "prompt": "\n".join(lines),
        "shortPrompt": short_prompt,
        "manualSteps": manual_steps(framework),
    }
