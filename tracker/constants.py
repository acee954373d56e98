"""Constants shared by the models, services and API."""

# user_group_map.grant_type
GRANT_DIRECT = 0
GRANT_REGEXP = 2

# group_group_map.grant_type
GROUP_MEMBERSHIP = 0
GROUP_BLESS = 1
GROUP_VISIBLE = 2

# group_control_map.membercontrol / othercontrol
CONTROLMAPNA = 0
CONTROLMAPSHOWN = 1
CONTROLMAPDEFAULT = 2
CONTROLMAPMANDATORY = 3

# Group privileges that may also be granted per product.
PER_PRODUCT_PRIVILEGES = ("editcomponents", "editbugs", "canconfirm")

# Groups created by the seed script that may never be deleted.
SYSTEM_GROUPS = (
    "admin",
    "tweakparams",
    "editusers",
    "creategroups",
    "editclassifications",
    "editcomponents",
    "editkeywords",
    "editbugs",
    "canconfirm",
    "bz_canusewhines",
    "bz_sudoers",
    "bz_can_disable_mfa",
)

# Email relationships
REL_ASSIGNEE = 0
REL_QA = 1
REL_REPORTER = 2
REL_CC = 3
REL_GLOBAL_WATCHER = 5
REL_ANY = 100

RELATIONSHIPS = {
    REL_ASSIGNEE: "Assignee",
    REL_QA: "QA Contact",
    REL_REPORTER: "Reporter",
    REL_CC: "CCed",
}

# Email events
EVT_OTHER = 0
EVT_ADDED_REMOVED = 1
EVT_COMMENT = 2
EVT_ATTACHMENT = 3
EVT_ATTACHMENT_DATA = 4
EVT_PROJ_MANAGEMENT = 5
EVT_OPENED_CLOSED = 6
EVT_KEYWORD = 7
EVT_CC = 8
EVT_DEPEND_BLOCK = 9
EVT_BUG_CREATED = 10
EVT_COMPONENT = 11

EVT_CHANGED_BY_ME = 100
EVT_UNCONFIRMED = 101

EVT_FLAG_REQUESTED = 50
EVT_REQUESTED_FLAG = 51

POS_EVENTS = (
    EVT_OTHER,
    EVT_ADDED_REMOVED,
    EVT_COMMENT,
    EVT_ATTACHMENT,
    EVT_ATTACHMENT_DATA,
    EVT_PROJ_MANAGEMENT,
    EVT_OPENED_CLOSED,
    EVT_KEYWORD,
    EVT_CC,
    EVT_DEPEND_BLOCK,
    EVT_BUG_CREATED,
    EVT_COMPONENT,
)
NEG_EVENTS = (EVT_CHANGED_BY_ME, EVT_UNCONFIRMED)
GLOBAL_EVENTS = (EVT_FLAG_REQUESTED, EVT_REQUESTED_FLAG)

# Logins are stored in tokens.eventdata, which caps their length.
MAX_LOGIN_LENGTH = 127

# Password that disables database authentication for an account.
NO_DB_LOGIN_PASSWORD = "*"

INACTIVE_ACCOUNT_REASON = "Inactive Account"

# Token types
TOKEN_ACCOUNT = "account"
TOKEN_EMAIL_OLD = "emailold"
TOKEN_EMAIL_NEW = "emailnew"

# Profile activity field names
FIELD_BUG_GROUP = "bug_group"
FIELD_CREATION_TS = "creation_ts"

# Days before an unused token expires
MAX_TOKEN_AGE_DAYS = 3

GRANT_TYPE_NAMES = {
    GROUP_MEMBERSHIP: "membership",
    GROUP_BLESS: "bless",
    GROUP_VISIBLE: "visible",
}

# Bounce messages are kept in audit_log under this field.
BOUNCE_MESSAGE_FIELD = "bounce_message"

# Preferences installed by the seed script: (name, default, legal values).
# Timezone values are checked against the tz database instead.
TIMEZONE_SETTING = "timezone"
TIMEZONE_SUBCLASS = "Timezone"
LOCAL_TIMEZONE = "local"
DEFAULT_SETTINGS = (
    (
        "comment_sort_order",
        "oldest_to_newest",
        ("oldest_to_newest", "newest_to_oldest", "newest_to_oldest_desc_first"),
    ),
    ("email_format", "html", ("html", "text_only")),
    ("quote_replies", "quoted_reply", ("quoted_reply", "simple_reply", "off")),
    (TIMEZONE_SETTING, LOCAL_TIMEZONE, ()),
)
