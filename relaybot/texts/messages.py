"""User-facing texts."""

WELCOME_FALLBACK = "Welcome!"
DEFAULT_NAME = "User"

CHALLENGE_PROMPT = (
    "🛡️ <b>Security check</b>\n"
    "Tap the button below to complete the verification and continue."
)
CHALLENGE_BUTTON = "Verify"
CHALLENGE_PASSED_NEXT_QUESTION = "✅ Verification passed!\nPlease answer:\n{question}"
QUESTION_PROMPT = "❓ <b>Security question</b>\nPlease answer:\n{question}"
VERIFIED = "✅ Verification passed!\nYou can now send messages and they will be forwarded to the admins."
WRONG_ANSWER = "❌ Wrong answer, please try again."

DELIVERED = "✅ Delivered"
RESEND_PLEASE = "Your conversation expired, please send your message again."
TRY_AGAIN_LATER = "The service is busy right now, please try again later."
KIND_REJECTED = "⚠️ {kind} are not accepted."
FIRST_MESSAGE_TEXT_ONLY = "⚠️ Your first message must be plain text."
AUTO_REPLY = "Auto-reply:\n{response}"
BUSY_PREFIX = "🌙 "

KEYWORD_WARNING = "⚠️ Blocked keyword ({count}/{threshold})"
KEYWORD_BLOCKED = "❌ You have been blocked. Send /start to request an unblock."

ADMIN_HELP = (
    "ℹ️ <b>Help</b>\n"
    "• Reply inside a user's topic to answer them\n"
    "• Use the buttons on the profile card to block, annotate or pin"
)
ADMIN_REPLY_RECEIPT = "✅ Replied"
ADMIN_REPLY_FAILED = "❌ Delivery failed"
NOTE_PROMPT = "⌨️ Reply with the note text (send /clear to remove it):"
NOTE_UPDATED = "✅ Note updated"
NOTE_CLEAR_COMMANDS = ("/clear", "clear")
USER_BLOCKED_NOTICE = "❌ Blocked"
USER_UNBLOCKED_NOTICE = "✅ Unblocked"
INBOX_DISMISSED = "Done"
NOT_ALLOWED = "⛔ Admins only"
PINNED = "📌 Pinned"

PROFILE_CARD_TITLE = "<b>👤 User profile</b>"
PROFILE_NO_USERNAME = "<code>none</code>"
PROFILE_NOTE_LINE = "\n📝 <b>Note:</b> {note}"
BLACKLIST_CARD_TITLE = "<b>🚫 User blocked</b>"
INBOX_CARD_TITLE = "<b>🔔 New message</b>"
INBOX_PREVIEW_LINE = "📝 <b>Preview:</b> {preview}"
INBOX_NOTE_UPDATED_LINE = "📝 <b>Note updated</b>"
INBOX_MEDIA_PREVIEW = "[media]"
EDIT_REPORT = "✏️ <b>Message edited</b>\nBefore: {before}\nAfter: {after}"
EDIT_UNKNOWN_BEFORE = "[unknown]"
EDIT_NON_TEXT = "[non-text]"
BACKUP_HEADER = "<b>📨 Backup</b> {name} ({user_id})"

INBOX_THREAD_NAME = "🔔 Unread messages"
BLACKLIST_THREAD_NAME = "🚫 Blacklist"

BUTTON_BLOCK = "🚫 Block"
BUTTON_UNBLOCK = "✅ Unblock"
BUTTON_NOTE = "✏️ Note"
BUTTON_PIN = "📌 Pin"
BUTTON_JUMP = "🚀 Reply"
BUTTON_DISMISS = "✅ Read / remove"

KIND_NAMES = {
    "forwarded": "Forwarded messages",
    "channel": "Channel forwards",
    "audio": "Voice and audio messages",
    "sticker": "Stickers and GIFs",
    "media": "Media files",
    "link": "Links",
    "text": "Text messages",
}

COMMAND_START = "Start"
COMMAND_ADMIN_START = "⚙️ Admin help"
COMMAND_HELP = "📄 Help"
