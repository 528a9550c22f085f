"""Cloud Code API paths and request constants."""

LOAD_CODE_ASSIST_PATH = "/v1internal:loadCodeAssist"
ONBOARD_USER_PATH = "/v1internal:onboardUser"
FETCH_AVAILABLE_MODELS_PATH = "/v1internal:fetchAvailableModels"
GENERATE_CONTENT_PATH = "/v1internal:generateContent"
STREAM_GENERATE_CONTENT_PATH = "/v1internal:streamGenerateContent?alt=sse"

CLOUDCODE_METADATA = {
    "ideType": "ANTIGRAVITY",
    "platform": "PLATFORM_UNSPECIFIED",
    "pluginType": "GEMINI",
}

# Tier used for onboarding when the server lists tiers without ids
LEGACY_TIER_ID = "LEGACY"

INVALID_GRANT_MARKER = "invalid_grant"
