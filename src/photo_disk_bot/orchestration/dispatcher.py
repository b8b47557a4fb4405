"""Telegram command and callback handlers built on python-telegram-bot."""

from __future__ import annotations

import asyncio
import functools
import html
import logging
import zlib
from dataclasses import dataclass
from datetime import date, datetime
from typing import TYPE_CHECKING, Any
from urllib.parse import quote

from telegram import (
    InlineKeyboardButton,
    InlineKeyboardMarkup,
    InputMediaPhoto,
    KeyboardButton,
    ReplyKeyboardMarkup,
    Update,
)
from telegram.constants import ParseMode
from telegram.ext import (
    Application,
    ApplicationBuilder,
    CallbackQueryHandler,
    CommandHandler,
    ContextTypes,
    MessageHandler,
    filters,
)

from photo_disk_bot.disk.client import DecodeFailed, FetchFailed
from photo_disk_bot.disk.models import OutcomeStatus
from photo_disk_bot.gallery.index import EmptyFolder
from photo_disk_bot.gallery.likes import FolderProvisioningIncomplete, LikeStatus

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from photo_disk_bot.disk.models import ImageRecord
    from photo_disk_bot.orchestration.runtime import BotRuntime

    Handler = Callable[[Update, ContextTypes.DEFAULT_TYPE], Awaitable[None]]

logger = logging.getLogger(__name__)

RUNTIME_KEY = "runtime"
BROWSE_KEY = "browse"
LIKE_REFS_KEY = "like_refs"

# Like buttons carry a short reference instead of the file name; Telegram
# caps callback data at 64 bytes.
LIKE_REF_PREFIX = "#"

BUTTON_MORE = "More"
BUTTON_CHANGE_FOLDER = "Change folder"
BUTTON_LIKES = "Likes"

DATE_FORMAT = "%d.%m.%Y"
MEDIA_GROUP_LIMIT = 10
ARCHIVE_FILENAME = "likes.zip"

NO_ACCESS_TEXT = "No access."
HELP_TEXT = (
    "Available commands:\n"
    "/find <date dd.mm.yyyy or name> - find a photo by date or name.\n"
    "/folders - choose the folder to browse.\n"
    "/changedir <name> - switch to a folder.\n"
    "/like <name> - add a photo to likes.\n"
    "/unlike <name> - remove a photo from likes.\n"
    "/likes - show liked photos.\n"
    "/archive - download liked originals as a zip.\n"
    "/delete <name> - delete a photo from the disk.\n"
    "/help - this list.\n"
    "/start - start the bot.\n"
)
START_TEXT = (
    "This bot sends photos from your cloud disk, finds them by name or date, "
    "keeps your likes and shares them as a folder on the disk."
)

DEFAULT_KEYBOARD = ReplyKeyboardMarkup(
    [[KeyboardButton(BUTTON_MORE), KeyboardButton(BUTTON_CHANGE_FOLDER), KeyboardButton(BUTTON_LIKES)]],
    resize_keyboard=True,
)


@dataclass(frozen=True)
class BrowseContext:
    """The folder a chat is currently browsing."""

    folder: str


def parse_command(text: str) -> tuple[str, str | None]:
    """Split ``/command [argument...]`` into (command, argument).

    The command is lowercased and stripped of any ``@botname`` suffix;
    the argument keeps its spacing and is None when absent.
    """
    head, _, rest = text.strip().partition(" ")
    command = head.split("@", 1)[0].lower()
    argument = rest.strip() or None
    return command, argument


def parse_date(text: str) -> date | None:
    """Parse a ``dd.mm.yyyy`` date, or return None."""
    try:
        return datetime.strptime(text.strip(), DATE_FORMAT).date()
    except ValueError:
        return None


def get_runtime(context: ContextTypes.DEFAULT_TYPE) -> BotRuntime:
    return context.bot_data[RUNTIME_KEY]  # type: ignore[no-any-return]


def get_browse_context(context: ContextTypes.DEFAULT_TYPE) -> BrowseContext:
    """Return the chat's BrowseContext, seeding it with the default folder."""
    chat_data: dict[str, Any] = context.chat_data  # type: ignore[assignment]
    browse = chat_data.get(BROWSE_KEY)
    if browse is None:
        browse = BrowseContext(folder=get_runtime(context).config.default_folder)
        chat_data[BROWSE_KEY] = browse
    return browse  # type: ignore[no-any-return]


def like_ref(context: ContextTypes.DEFAULT_TYPE, record: ImageRecord) -> str:
    """Register ``record`` in the chat's like references and return its key."""
    source = record.path or f"{record.parent_folder_name}/{record.name}"
    ref = f"{LIKE_REF_PREFIX}{zlib.crc32(source.encode()):08x}"
    chat_data: dict[str, Any] = context.chat_data  # type: ignore[assignment]
    chat_data.setdefault(LIKE_REFS_KEY, {})[ref] = record
    return ref


def restricted(handler: Handler) -> Handler:
    """Serve only the allow-listed user; everyone else gets a fixed reply."""

    @functools.wraps(handler)
    async def wrapper(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
        user = update.effective_user
        if user is None:
            logger.debug("[restricted] update without user; ignored")
            return
        allowed = get_runtime(context).config.allowed_user_id
        if user.id != allowed:
            await _deny(update, context, allowed)
            return
        await handler(update, context)

    return wrapper


async def _deny(update: Update, context: ContextTypes.DEFAULT_TYPE, owner_id: int) -> None:
    user = update.effective_user
    message = update.effective_message
    text = message.text if message is not None and message.text else ""
    logger.warning("[restricted] access denied; user_id:%s", user.id if user else None)
    if update.callback_query is not None:
        await update.callback_query.answer(NO_ACCESS_TEXT)
    elif update.effective_chat is not None:
        await context.bot.send_message(
            chat_id=update.effective_chat.id, text=NO_ACCESS_TEXT, disable_notification=True
        )
    await context.bot.send_message(
        chat_id=owner_id,
        text=f"{datetime.now():%Y-%m-%d %H:%M} | {user.full_name if user else '?'} wrote to the bot: {text}",
    )


async def _reply(
    update: Update,
    context: ContextTypes.DEFAULT_TYPE,
    text: str,
    **kwargs: Any,
) -> None:
    await context.bot.send_message(
        chat_id=update.effective_chat.id,  # type: ignore[union-attr]
        text=text,
        disable_notification=True,
        **kwargs,
    )


# ---------------------------------------------------------------------------
# Actions shared by commands, keyboard texts and callbacks
# ---------------------------------------------------------------------------


def _caption(runtime: BotRuntime, record: ImageRecord) -> str:
    link = html.escape(runtime.config.open_in_browser_url + quote(record.name), quote=True)
    return f'<a href="{link}">{html.escape(record.name)}</a> <b>{record.captured_at:%d.%m.%Y %H:%M}</b>'


async def send_image(update: Update, context: ContextTypes.DEFAULT_TYPE, record: ImageRecord) -> None:
    """Send a thumbnail with caption, a same-day button and a like button."""
    runtime = get_runtime(context)
    try:
        thumbnail = await asyncio.to_thread(runtime.loader.load_thumbnail, record)
    except FetchFailed:
        await _reply(update, context, f"Could not download {record.name}.")
        return
    chat_id = update.effective_chat.id  # type: ignore[union-attr]
    like_label = "Liked" if runtime.likes.is_liked(chat_id, record.name) else "Like"
    markup = InlineKeyboardMarkup(
        [
            [
                InlineKeyboardButton(
                    "More from this day", callback_data=f"/find {record.captured_on:{DATE_FORMAT}}"
                ),
                InlineKeyboardButton(like_label, callback_data=f"/like {like_ref(context, record)}"),
            ]
        ]
    )
    await context.bot.send_photo(
        chat_id=chat_id,
        photo=thumbnail,
        caption=_caption(runtime, record),
        parse_mode=ParseMode.HTML,
        reply_markup=markup,
        disable_notification=True,
    )
    logger.info("[send_image] photo sent; name:%s", record.name)


async def find_action(update: Update, context: ContextTypes.DEFAULT_TYPE, query: str | None) -> None:
    """Random photo, random photo of a day, or first name match."""
    runtime = get_runtime(context)
    folder = get_browse_context(context).folder
    outcome = await asyncio.to_thread(runtime.index.ensure_folder_loaded, folder)

    if query is None:
        try:
            record = runtime.index.random_image(folder)
        except EmptyFolder:
            if outcome.status is OutcomeStatus.FAILED:
                await _reply(update, context, f"Could not load folder {folder} from the disk.")
            else:
                await _reply(update, context, f"No photos in folder {folder}.")
            return
        await send_image(update, context, record)
        return

    day = parse_date(query.split(" ", 1)[0])
    if day is not None:
        match = runtime.index.random_image_on_date(day, folder)
        if match is None:
            await _reply(update, context, f"No photos taken on {day:{DATE_FORMAT}}.")
            return
        await send_image(update, context, match)
        return

    found = runtime.index.find_by_name(query, folder)
    if found is None:
        await _reply(update, context, f'Nothing matches "{query}".')
        return
    await send_image(update, context, found)


async def folders_action(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Offer the subfolders of the photos root as inline buttons."""
    runtime = get_runtime(context)
    outcome = await asyncio.to_thread(runtime.index.list_folders)
    if outcome.status is OutcomeStatus.FAILED:
        await _reply(update, context, "Could not list folders on the disk.")
        return
    if outcome.status is OutcomeStatus.EMPTY:
        await _reply(update, context, "There are no folders to choose from.")
        return
    markup = InlineKeyboardMarkup(
        [[InlineKeyboardButton(f.name, callback_data=f"/changedir {f.name}")] for f in outcome.value]
    )
    await _reply(update, context, "Choose a folder", reply_markup=markup)


async def changedir_action(update: Update, context: ContextTypes.DEFAULT_TYPE, folder: str | None) -> None:
    """Switch the chat's browse folder and load it."""
    if not folder:
        await _reply(update, context, "Usage: /changedir <name>")
        return
    runtime = get_runtime(context)
    context.chat_data[BROWSE_KEY] = BrowseContext(folder=folder)  # type: ignore[index]
    outcome = await asyncio.to_thread(runtime.index.ensure_folder_loaded, folder)
    if outcome.status is OutcomeStatus.FAILED:
        text = f"Folder changed to {folder}, but it could not be loaded from the disk."
    elif outcome.status is OutcomeStatus.EMPTY:
        text = f"Folder changed to {folder}. It has no photos."
    else:
        text = f"Folder changed to {folder}."
    await _reply(update, context, text, reply_markup=DEFAULT_KEYBOARD)


async def like_action(update: Update, context: ContextTypes.DEFAULT_TYPE, name: str | None) -> None:
    """Like a photo and point at the public likes folder.

    ``name`` is either a button reference to the exact photo that was shown,
    or typed text matched in the chat's folder: an exact file name first,
    then a substring.
    """
    if not name:
        await _reply(update, context, "Usage: /like <name>")
        return
    runtime = get_runtime(context)
    chat_id = update.effective_chat.id  # type: ignore[union-attr]
    if name.startswith(LIKE_REF_PREFIX):
        refs: dict[str, ImageRecord] = context.chat_data.get(LIKE_REFS_KEY, {})  # type: ignore[union-attr]
        record = refs.get(name)
        if record is None:
            await _reply(update, context, "That photo is no longer available, open it again.")
            return
    else:
        folder = get_browse_context(context).folder
        await asyncio.to_thread(runtime.index.ensure_folder_loaded, folder)
        record = runtime.index.find_exact(name, folder) or runtime.index.find_by_name(name, folder)
        if record is None:
            await _reply(update, context, f'Nothing matches "{name}".')
            return
    try:
        status = await asyncio.to_thread(runtime.likes.add_like, chat_id, record)
        url = await asyncio.to_thread(runtime.likes.public_folder_url, chat_id)
    except FolderProvisioningIncomplete:
        await _reply(update, context, "The likes folder is not ready yet, try again.")
        return
    except (FetchFailed, DecodeFailed):
        await _reply(update, context, f"Could not add {record.name} to likes.")
        return

    if status is LikeStatus.ALREADY_LIKED:
        text = f'{html.escape(record.name)} is already in <a href="{html.escape(url, quote=True)}">likes</a>.'
    else:
        text = f'{html.escape(record.name)} added to <a href="{html.escape(url, quote=True)}">likes</a>.'
    await _reply(update, context, text, parse_mode=ParseMode.HTML, disable_web_page_preview=True)


async def unlike_action(update: Update, context: ContextTypes.DEFAULT_TYPE, name: str | None) -> None:
    if not name:
        await _reply(update, context, "Usage: /unlike <name>")
        return
    runtime = get_runtime(context)
    chat_id = update.effective_chat.id  # type: ignore[union-attr]
    try:
        status = await asyncio.to_thread(runtime.likes.remove_like, chat_id, name)
    except FetchFailed:
        await _reply(update, context, f"Could not remove {name} from likes.")
        return
    if status is LikeStatus.NOT_LIKED:
        await _reply(update, context, f"{name} is not in likes.")
    else:
        await _reply(update, context, f"{name} removed from likes.")


async def likes_action(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Send liked thumbnails in media groups, then the public folder link."""
    runtime = get_runtime(context)
    chat_id = update.effective_chat.id  # type: ignore[union-attr]
    pairs = await asyncio.to_thread(runtime.likes.like_thumbnails, chat_id)
    if not pairs:
        await _reply(update, context, "No likes yet.")
        return

    for start in range(0, len(pairs), MEDIA_GROUP_LIMIT):
        chunk = pairs[start : start + MEDIA_GROUP_LIMIT]
        if len(chunk) == 1:
            entry, thumbnail = chunk[0]
            await context.bot.send_photo(
                chat_id=chat_id, photo=thumbnail, caption=entry.image_name, disable_notification=True
            )
            continue
        await context.bot.send_media_group(
            chat_id=chat_id,
            media=[InputMediaPhoto(media=thumbnail, caption=entry.image_name) for entry, thumbnail in chunk],
            disable_notification=True,
        )

    try:
        url = await asyncio.to_thread(runtime.likes.public_folder_url, chat_id)
    except (FolderProvisioningIncomplete, FetchFailed, DecodeFailed):
        logger.warning("[likes_action] public link unavailable; chat_id:%d", chat_id, exc_info=True)
        return
    await _reply(
        update,
        context,
        f'<a href="{html.escape(url, quote=True)}">Folder on the disk</a>',
        parse_mode=ParseMode.HTML,
    )


async def archive_action(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Send every liked original as one zip document."""
    runtime = get_runtime(context)
    chat_id = update.effective_chat.id  # type: ignore[union-attr]
    entries = await asyncio.to_thread(runtime.likes.list_likes, chat_id)
    if not entries:
        await _reply(update, context, "No likes yet.")
        return
    archive = await asyncio.to_thread(runtime.likes.export_originals_archive, chat_id)
    await context.bot.send_document(
        chat_id=chat_id,
        document=archive,
        filename=ARCHIVE_FILENAME,
        disable_notification=True,
    )


async def delete_action(update: Update, context: ContextTypes.DEFAULT_TYPE, name: str | None) -> None:
    if not name:
        await _reply(update, context, "Usage: /delete <name>")
        return
    runtime = get_runtime(context)
    folder = get_browse_context(context).folder
    try:
        removed = await asyncio.to_thread(runtime.index.delete_image, name, folder)
    except FetchFailed:
        await _reply(update, context, f"Could not delete {name} on the disk.")
        return
    if removed is None:
        await _reply(update, context, f"No photo named {name} in {folder}.")
        return
    await _reply(update, context, f"Deleted {removed.name}.")


# ---------------------------------------------------------------------------
# Telegram handlers
# ---------------------------------------------------------------------------


def _argument(context: ContextTypes.DEFAULT_TYPE) -> str | None:
    return " ".join(context.args or []).strip() or None


@restricted
async def start_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    chat = update.effective_chat
    logger.info("[start_command] bot started; chat_id:%s", chat.id if chat else None)
    await _reply(update, context, START_TEXT, reply_markup=DEFAULT_KEYBOARD)
    await _reply(update, context, HELP_TEXT)


@restricted
async def help_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    await _reply(update, context, HELP_TEXT)


@restricted
async def find_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    await find_action(update, context, _argument(context))


@restricted
async def folders_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    await folders_action(update, context)


@restricted
async def changedir_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    await changedir_action(update, context, _argument(context))


@restricted
async def like_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    await like_action(update, context, _argument(context))


@restricted
async def unlike_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    await unlike_action(update, context, _argument(context))


@restricted
async def likes_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    await likes_action(update, context)


@restricted
async def archive_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    await archive_action(update, context)


@restricted
async def delete_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    await delete_action(update, context, _argument(context))


@restricted
async def text_message(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Reply-keyboard buttons; any other text is a name search."""
    text = (update.effective_message.text or "").strip()  # type: ignore[union-attr]
    if text == BUTTON_MORE:
        await find_action(update, context, None)
    elif text == BUTTON_CHANGE_FOLDER:
        await folders_action(update, context)
    elif text == BUTTON_LIKES:
        await likes_action(update, context)
    elif text:
        await find_action(update, context, text)


@restricted
async def callback_query(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Route ``command argument`` callback payloads to the matching action."""
    query = update.callback_query
    await query.answer()  # type: ignore[union-attr]
    command, argument = parse_command(query.data or "")  # type: ignore[union-attr]
    logger.info("[callback_query] callback received; command:%s", command)

    if command == "/find":
        await find_action(update, context, argument)
    elif command == "/like":
        await like_action(update, context, argument)
    elif command == "/unlike":
        await unlike_action(update, context, argument)
    elif command == "/changedir":
        await changedir_action(update, context, argument)
    elif command in ("/likes", "/openlikes"):
        await likes_action(update, context)
    else:
        logger.warning("[callback_query] unknown callback; command:%s", command)


async def error_handler(update: object, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Log any handler failure; the bot keeps serving later updates."""
    logger.error("[error_handler] update handling failed", exc_info=context.error)
    if isinstance(update, Update) and update.effective_chat is not None:
        await context.bot.send_message(
            chat_id=update.effective_chat.id,
            text="Something went wrong, try again.",
            disable_notification=True,
        )


async def _on_startup(application: Application) -> None:  # type: ignore[type-arg]
    runtime: BotRuntime = application.bot_data[RUNTIME_KEY]
    await asyncio.to_thread(runtime.warm_up)


def register_handlers(application: Application) -> None:  # type: ignore[type-arg]
    application.add_handler(CommandHandler("start", start_command))
    application.add_handler(CommandHandler("help", help_command))
    application.add_handler(CommandHandler("find", find_command))
    application.add_handler(CommandHandler("folders", folders_command))
    application.add_handler(CommandHandler("changedir", changedir_command))
    application.add_handler(CommandHandler("like", like_command))
    application.add_handler(CommandHandler("unlike", unlike_command))
    application.add_handler(CommandHandler("likes", likes_command))
    application.add_handler(CommandHandler("archive", archive_command))
    application.add_handler(CommandHandler("delete", delete_command))
    application.add_handler(CallbackQueryHandler(callback_query))
    application.add_handler(MessageHandler(filters.TEXT & ~filters.COMMAND, text_message))
    application.add_error_handler(error_handler)


def build_application(runtime: BotRuntime, polling: bool = True) -> Application:  # type: ignore[type-arg]
    """Create the Telegram application with every handler registered.

    Args:
        runtime: Shared BotRuntime stored in ``bot_data``.
        polling: False for webhook hosting, where updates are pushed to
            ``Application.process_update`` and no updater is needed.

    Returns:
        Configured, not yet initialised Application.
    """
    builder = ApplicationBuilder().token(runtime.config.telegram_token).post_init(_on_startup)
    if not polling:
        builder = builder.updater(None)
    application = builder.build()
    application.bot_data[RUNTIME_KEY] = runtime
    register_handlers(application)
    return application
