"""Domain constants and type aliases"""
from typing import Literal

# Type aliases for notification types
NotificationType = Literal["chat", "chat_file", "group_message", "group_file"]

# Notification type constants
NOTIFICATION_TYPE_CHAT: NotificationType = "chat"
NOTIFICATION_TYPE_CHAT_FILE: NotificationType = "chat_file"
NOTIFICATION_TYPE_GROUP_MESSAGE: NotificationType = "group_message"
NOTIFICATION_TYPE_GROUP_FILE: NotificationType = "group_file"

# Inbound socket events
EVENT_REGISTER = "register"
EVENT_START_UPLOAD = "start upload"
EVENT_START_GROUP_UPLOAD = "startgroupupload"
EVENT_FILE_CHUNK = "file chunk"
EVENT_FILE_CHUNK_END = "file chunk end"
EVENT_SEND_MESSAGE = "sendMessage"
EVENT_GET_MESSAGES = "getMessages"
EVENT_MARK_AS_READ = "markAsRead"
EVENT_MARK_GROUP_AS_READ = "markGroupAsRead"
EVENT_JOIN_GROUP = "joinGroup"
EVENT_SEND_GROUP_MESSAGE = "sendGroupMessage"
EVENT_GET_GROUP_MESSAGES = "getgroupMessages"

# Outbound socket events
EVENT_RECEIVE_MESSAGE = "receiveMessage"
EVENT_RECEIVE_GROUP_MESSAGE = "receiveGroupMessage"
EVENT_ALL_MESSAGES = "allMessages"
EVENT_ALL_GROUP_MESSAGES = "allgroupMessages"
EVENT_MESSAGES_READ = "messagesRead"
EVENT_GROUP_MESSAGES_READ = "groupMessagesRead"
EVENT_USER_JOINED = "user-joined"
EVENT_SEND_NOTIFICATION = "sendNotification"
EVENT_NEW_NOTIFICATION = "newNotification"

# Relative prefix stored in Message.file for uploaded files
UPLOADS_PREFIX = "uploads"
