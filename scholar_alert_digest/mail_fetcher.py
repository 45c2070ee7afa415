import base64
import email
import email.policy
import json
import logging
import os.path
import threading
import time
from concurrent.futures import ThreadPoolExecutor

from google.auth.transport.requests import Request
from google.oauth2.credentials import Credentials
from google_auth_oauthlib.flow import InstalledAppFlow
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError

from scholar_alert_digest.models import Message

LOGGER = logging.getLogger(__name__)

USER = "me"
READONLY_SCOPES = ["https://www.googleapis.com/auth/gmail.readonly"]
# If modifying these scopes, delete the previously saved token file.
MODIFY_SCOPES = READONLY_SCOPES + ["https://www.googleapis.com/auth/gmail.modify"]

INSTRUCTIONS = """Please make sure that you have:
 - a project with Gmail API enabled
   https://developers.google.com/workspace/guides/create-project
 - downloaded "OAuth client ID" credentials for a desktop app, saved as 'credentials.json'
   https://developers.google.com/workspace/guides/create-credentials#desktop-app
"""


def get_credentials(credentials_file="credentials.json", token_file="token.json",
                    need_write_access=False):
    """Returns OAuth credentials, running the local browser flow if needed."""
    scopes = MODIFY_SCOPES if need_write_access else READONLY_SCOPES
    creds = None
    # The token file stores the user's access and refresh tokens, and is
    # created automatically when the authorization flow completes for the first
    # time.
    if os.path.exists(token_file):
        creds = Credentials.from_authorized_user_file(token_file, scopes)
    # If there are no (valid) credentials available, let the user log in.
    if not creds or not creds.valid:
        if creds and creds.expired and creds.refresh_token:
            creds.refresh(Request())
        else:
            if not os.path.exists(credentials_file):
                raise FileNotFoundError(f"{credentials_file} not found.\n{INSTRUCTIONS}")
            flow = InstalledAppFlow.from_client_secrets_file(credentials_file, scopes)
            creds = flow.run_local_server(port=0)
        # Save the credentials for the next run
        with open(token_file, "w") as token:
            token.write(creds.to_json())
    return creds


def build_service(creds):
    return build("gmail", "v1", credentials=creds, cache_discovery=False)


def format_as_id(label):
    """Formats a human-readable label the way Gmail search expects it."""
    return label.replace(" ", "-").lower()


def build_query(label="", unread=True, sender="scholaralerts-noreply@google.com"):
    if label:
        query = f"label:{format_as_id(label)}"
    else:
        query = f"from:{sender}"
    return query + (" is:unread" if unread else " is:read")


def list_labels(service):
    response = service.users().labels().list(userId=USER).execute()
    labels = response.get("labels", [])
    LOGGER.info("%d labels found", len(labels))
    return [label["name"] for label in labels]


def fetch_message_ids(service, query):
    """Fetch IDs of all messages matching the query, following pagination."""
    request = service.users().messages().list(userId=USER, q=query)
    message_ids = []
    while request is not None:
        response = request.execute()
        message_ids.extend(m["id"] for m in response.get("messages", []))
        request = service.users().messages().list_next(request, response)
    return message_ids


def find_html_part(email_message):
    """Returns the decoded body of the first non-attachment text/html part."""
    for part in email_message.walk():
        if part.get_content_type() != "text/html":
            continue
        if "attachment" in str(part.get("Content-Disposition", "")):
            continue
        payload = part.get_payload(decode=True)
        if payload:
            return payload
    return None


def message_from_raw(message_id, raw_email):
    """Builds a Message from the RFC 822 bytes of an email."""
    email_message = email.message_from_bytes(raw_email, policy=email.policy.default)
    return Message(
        id=message_id,
        subject=str(email_message.get("Subject", "")),
        body_html=find_html_part(email_message),
    )


def get_email_details(service, message_id):
    """Get the full email for a given message ID, or None if it can't be fetched."""
    try:
        message = (
            service.users()
            .messages()
            .get(userId=USER, id=message_id, format="raw")
            .execute()
        )
    except HttpError as error:
        LOGGER.warning("Unable to fetch message by ID %s: %s", message_id, error)
        return None
    raw_email = base64.urlsafe_b64decode(message["raw"].encode("ASCII"))
    return message_from_raw(message_id, raw_email)


def fetch_messages(creds, query, concurrency=10):
    """
    Searches Gmail and fetches all matching messages, `concurrency` at a time.
    Messages that fail to download are logged and left out.
    """
    LOGGER.info("searching messages from Gmail: %r", query)
    start = time.monotonic()
    message_ids = fetch_message_ids(build_service(creds), query)
    LOGGER.info("%d messages found (took %.0f sec)", len(message_ids), time.monotonic() - start)
    if not message_ids:
        return []

    # discovery-built services are not thread safe, keep one per worker
    local = threading.local()

    def fetch_one(message_id):
        if not hasattr(local, "service"):
            local.service = build_service(creds)
        return get_email_details(local.service, message_id)

    start = time.monotonic()
    with ThreadPoolExecutor(max_workers=max(1, concurrency)) as pool:
        messages = [m for m in pool.map(fetch_one, message_ids) if m is not None]
    LOGGER.info("%d messages fetched (took %.0f sec)", len(messages), time.monotonic() - start)
    return messages


def read_message_fixtures(path):
    """Reads messages from a JSON file instead of fetching them from Gmail."""
    LOGGER.info("reading messages from %s instead of fetching from Gmail", path)
    with open(path, "r", encoding="utf-8") as f:
        return [Message(**m) for m in json.load(f)]


def mark_messages_read(service, messages):
    """Removes the UNREAD label from all given messages."""
    message_ids = [m.id for m in messages]
    if not message_ids:
        return
    # batchModify accepts at most 1000 IDs per call
    for i in range(0, len(message_ids), 1000):
        service.users().messages().batchModify(
            userId=USER,
            body={"ids": message_ids[i:i + 1000], "removeLabelIds": ["UNREAD"]},
        ).execute()
    LOGGER.info("%d messages marked as read", len(message_ids))
