"""
Telegram bot using aiogram 3.x
Commands, saved prompts, backend services and generation dispatch.
Generation itself runs on the Celery worker (app.workers.tasks.generation).
"""
import asyncio
import html
import logging

from aiogram import Bot, Dispatcher, F, Router, BaseMiddleware
from aiogram.filters import Command, CommandObject
from aiogram.types import (
    Message,
    CallbackQuery,
    InlineKeyboardMarkup,
    InlineKeyboardButton,
    ErrorEvent,
    TelegramObject,
)

from app.bot.images import (
    is_group_chat,
    largest_photo_id,
    replied_non_photo_ids,
    sticker_file_id,
    strip_group_prefix,
)
from app.bot.params import ParsedParams, params_error_text, parse_text_params
from app.core.config import QUALITY_TIERS, settings
from app.core.logging import configure_logging
from app.db.session import get_db_session, init_db
from app.schemas.generation import GenerationJob, ServiceConfig
from app.services.aspect_ratio import DEFAULT_ASPECT_RATIO
from app.services.backends.resolver import ENV_SERVICE_NAME, mask_secret, resolve_service_config
from app.services.backends.service import BackendRegistryService, DuplicateServiceName
from app.services.exceptions import InvalidBackendConfig, NoServiceConfigured, ServiceNotFound
from app.services.generation import messages
from app.services.image_generation import build_generate_url
from app.services.media_groups.aggregator import media_groups
from app.services.prompts.service import PromptService
from app.services.user_settings.service import UserSettingsService

configure_logging()
logger = logging.getLogger("bot")

HTML = "HTML"
PROMPT_PREVIEW_LENGTH = 30

router = Router()

START_TEXT = (
    "👋 <b>Image generation bot</b>\n\n"
    "Send a photo with a caption, reply to a photo with a prompt, "
    "or just write a prompt to generate from text.\n\n"
    "/help shows every option."
)

HELP_TEXT = (
    "📖 <b>How to use</b>\n\n"
    "<b>Generate</b>\n"
    "• Photo with a caption: the caption is the prompt\n"
    "• Reply to a photo, album, sticker or image file with a prompt\n"
    "• Reply to a text message with a photo or sticker: the text is the prompt\n"
    "• Plain text: generate from text only\n"
    "• No prompt: your default saved prompt (or the built-in one) is used\n"
    "• In groups, start the text with <code>.</code>\n\n"
    "<b>Parameters</b>\n"
    "• Ratio: <code>@1:1</code> <code>@2:3</code> <code>@3:2</code> <code>@3:4</code> <code>@4:3</code> "
    "<code>@4:5</code> <code>@5:4</code> <code>@9:16</code> <code>@16:9</code> <code>@21:9</code>\n"
    "• Quality: <code>@1K</code> <code>@2K</code> <code>@4K</code>\n"
    "• <code>@s</code>: use only the replied photo, not the whole album\n"
    "Example: <code>translate this comic @16:9 @4K</code>\n\n"
    "<b>Prompts</b>\n"
    "/save &lt;name&gt; &lt;prompt&gt; save a prompt\n"
    "/list saved prompts\n"
    "/history recent prompts\n"
    "/setdefault pick the default prompt\n"
    "/delete delete a saved prompt\n\n"
    "<b>Settings</b>\n"
    "/settings default quality\n"
    "/service manage generation services"
)

SERVICE_HELP_TEXT = (
    "🔌 <b>Generation services</b>\n\n"
    "<code>/service list</code>\n"
    "<code>/service add standard &lt;name&gt; &lt;API_KEY&gt;</code>\n"
    "<code>/service add custom &lt;name&gt; &lt;BASE_URL&gt; &lt;API_KEY&gt;</code>\n"
    "<code>/service add vertex &lt;name&gt; &lt;API_KEY&gt; &lt;PROJECT_ID&gt; &lt;LOCATION&gt; [MODEL] [BASE_URL]</code>\n"
    "<code>/service use &lt;id&gt;</code>\n"
    "<code>/service delete &lt;id&gt;</code>\n\n"
    "A newly added service becomes the default."
)


class AlbumCacheMiddleware(BaseMiddleware):
    """
    Remember every album photo before routing.
    Album members without a caption have no handler, so this runs as an outer middleware.
    """

    async def __call__(self, handler, event: TelegramObject, data: dict):
        if isinstance(event, Message) and event.media_group_id and event.photo:
            media_groups.append(event.media_group_id, largest_photo_id(event))
            logger.debug(
                "media_group_photo_cached",
                extra={"batch_id": event.media_group_id, "message_id": event.message_id},
            )
        return await handler(event, data)


def _preview(text: str, limit: int = PROMPT_PREVIEW_LENGTH) -> str:
    text = " ".join(text.split())
    if len(text) > limit:
        return text[:limit] + "..."
    return text


def quality_keyboard(current: str) -> InlineKeyboardMarkup:
    buttons = [
        InlineKeyboardButton(
            text=f"✅ {tier}" if tier == current else tier,
            callback_data=f"quality:{tier}",
        )
        for tier in QUALITY_TIERS
    ]
    return InlineKeyboardMarkup(inline_keyboard=[buttons])


def prompts_keyboard(items: list[tuple[int, str]], prefix: str) -> InlineKeyboardMarkup:
    buttons = [
        [InlineKeyboardButton(text=label, callback_data=f"{prefix}:{item_id}")]
        for item_id, label in items
    ]
    return InlineKeyboardMarkup(inline_keyboard=buttons)


# ===========================================
# Commands
# ===========================================

@router.message(Command("start"))
async def cmd_start(message: Message):
    await message.answer(START_TEXT, parse_mode=HTML)


@router.message(Command("help"))
async def cmd_help(message: Message):
    await message.answer(HELP_TEXT, parse_mode=HTML)


@router.message(Command("save"))
async def cmd_save(message: Message, command: CommandObject):
    parts = (command.args or "").split(maxsplit=1)
    if len(parts) < 2:
        await message.reply(
            "Usage: <code>/save &lt;name&gt; &lt;prompt&gt;</code>",
            parse_mode=HTML,
        )
        return
    name, prompt = parts[0], parts[1].strip()
    with get_db_session() as db:
        PromptService(db).save(message.from_user.id, name, prompt)
    await message.reply(f"✅ Saved prompt <b>{html.escape(name)}</b>", parse_mode=HTML)


@router.message(Command("list"))
async def cmd_list(message: Message):
    with get_db_session() as db:
        saved = PromptService(db).list_saved(message.from_user.id)
        items = [
            (p.id, f"{'⭐ ' if p.is_default else ''}{p.name}: {_preview(p.prompt)}")
            for p in saved
        ]
    if not items:
        await message.reply("No saved prompts yet. Use /save &lt;name&gt; &lt;prompt&gt;", parse_mode=HTML)
        return
    await message.reply(
        "📋 <b>Saved prompts</b>\nTap one to show the full text.",
        parse_mode=HTML,
        reply_markup=prompts_keyboard(items, "copy"),
    )


@router.message(Command("history"))
async def cmd_history(message: Message):
    with get_db_session() as db:
        history = PromptService(db).list_history(message.from_user.id, limit=settings.history_limit)
        items = [(h.id, _preview(h.prompt)) for h in history]
    if not items:
        await message.reply("No prompt history yet.")
        return
    await message.reply(
        "🕘 <b>Recent prompts</b>\nTap one to show the full text.",
        parse_mode=HTML,
        reply_markup=prompts_keyboard(items, "hist"),
    )


@router.message(Command("setdefault"))
async def cmd_setdefault(message: Message):
    with get_db_session() as db:
        saved = PromptService(db).list_saved(message.from_user.id)
        items = [(p.id, f"{'⭐ ' if p.is_default else ''}{p.name}") for p in saved]
    if not items:
        await message.reply("No saved prompts yet. Use /save &lt;name&gt; &lt;prompt&gt;", parse_mode=HTML)
        return
    await message.reply(
        "⭐ <b>Choose the default prompt</b>",
        parse_mode=HTML,
        reply_markup=prompts_keyboard(items, "default"),
    )


@router.message(Command("delete"))
async def cmd_delete(message: Message):
    with get_db_session() as db:
        saved = PromptService(db).list_saved(message.from_user.id)
        items = [(p.id, f"🗑 {p.name}") for p in saved]
    if not items:
        await message.reply("No saved prompts to delete.")
        return
    await message.reply(
        "🗑 <b>Choose a prompt to delete</b>",
        parse_mode=HTML,
        reply_markup=prompts_keyboard(items, "del"),
    )


@router.message(Command("settings"))
async def cmd_settings(message: Message):
    with get_db_session() as db:
        quality = UserSettingsService(db).get_quality(message.from_user.id)
    await message.reply(
        f"⚙️ <b>Settings</b>\n\nDefault quality: <code>{quality}</code>",
        parse_mode=HTML,
        reply_markup=quality_keyboard(quality),
    )


@router.message(Command("service"))
async def cmd_service(message: Message, command: CommandObject):
    args = (command.args or "").split()
    user_id = message.from_user.id
    action = args[0].lower() if args else "help"

    if action == "list":
        await message.reply(_service_list_text(user_id), parse_mode=HTML)
    elif action == "add":
        await message.reply(_service_add(user_id, args[1:]), parse_mode=HTML)
    elif action == "use":
        await message.reply(_service_use(user_id, args[1:]), parse_mode=HTML)
    elif action in ("delete", "del", "rm"):
        await message.reply(_service_delete(user_id, args[1:]), parse_mode=HTML)
    else:
        await message.reply(SERVICE_HELP_TEXT, parse_mode=HTML)


def _service_list_text(user_id: int) -> str:
    with get_db_session() as db:
        services = BackendRegistryService(db).list_services(user_id)
        lines = ["🔌 <b>Your services</b>", ""]
        if not services:
            lines.append("(no services)")
        for s in services:
            default_mark = " [default]" if s.is_default else ""
            lines.append(
                f"#{s.id} <b>{html.escape(s.name)}</b> ({s.service_type}){default_mark} "
                f"key=<code>{html.escape(mask_secret(s.api_key))}</code>"
            )
            details = []
            if s.base_url:
                details.append(f"base={html.escape(s.base_url)}")
            if s.project_id:
                details.append(f"project={html.escape(s.project_id)}")
            if s.location:
                details.append(f"location={html.escape(s.location)}")
            if s.model:
                details.append(f"model={html.escape(s.model)}")
            if details:
                lines.append("    " + " ".join(details))
        has_default = any(s.is_default for s in services)
    if not has_default and settings.gemini_api_key.strip():
        lines.append("")
        lines.append(f"Without a default service the environment key is used (<code>{ENV_SERVICE_NAME}</code>).")
    return "\n".join(lines)


def _service_add(user_id: int, args: list[str]) -> str:
    if len(args) < 3:
        return SERVICE_HELP_TEXT
    variant, name = args[0].lower(), args[1]
    fields: dict[str, str] = {}
    if variant == "custom":
        if len(args) < 4:
            return SERVICE_HELP_TEXT
        fields = {"base_url": args[2], "api_key": args[3]}
    elif variant in ("vertex", "gcp"):
        if len(args) < 5:
            return SERVICE_HELP_TEXT
        fields = {"api_key": args[2], "project_id": args[3], "location": args[4]}
        if len(args) > 5:
            fields["model"] = args[5]
        if len(args) > 6:
            fields["base_url"] = args[6]
    else:
        fields = {"api_key": args[2]}

    candidate = ServiceConfig(type=variant, name=name, **fields)
    try:
        build_generate_url(candidate)
    except InvalidBackendConfig as e:
        return f"❌ Invalid service: {html.escape(str(e))}"

    with get_db_session() as db:
        try:
            service = BackendRegistryService(db).add(
                user_id,
                candidate.type.value,
                candidate.name,
                candidate.api_key,
                base_url=candidate.base_url,
                project_id=candidate.project_id,
                location=candidate.location,
                model=candidate.model,
            )
        except DuplicateServiceName:
            return f"❌ A service named <b>{html.escape(name)}</b> already exists"
        return (
            f"✅ Added <b>{html.escape(service.name)}</b> (#{service.id}, {service.service_type}) "
            "and made it the default"
        )


def _parse_service_id(args: list[str]) -> int | None:
    if not args:
        return None
    try:
        return int(args[0].lstrip("#"))
    except ValueError:
        return None


def _service_use(user_id: int, args: list[str]) -> str:
    service_id = _parse_service_id(args)
    if service_id is None:
        return "Usage: <code>/service use &lt;id&gt;</code>"
    with get_db_session() as db:
        try:
            service = BackendRegistryService(db).set_default(user_id, service_id)
        except ServiceNotFound:
            return f"❌ Service #{service_id} not found"
        return f"✅ Default service: <b>{html.escape(service.name)}</b> (#{service.id})"


def _service_delete(user_id: int, args: list[str]) -> str:
    service_id = _parse_service_id(args)
    if service_id is None:
        return "Usage: <code>/service delete &lt;id&gt;</code>"
    with get_db_session() as db:
        try:
            BackendRegistryService(db).delete(user_id, service_id)
        except ServiceNotFound:
            return f"❌ Service #{service_id} not found"
    return f"✅ Deleted service #{service_id}"


# ===========================================
# Callbacks
# ===========================================

def _callback_id(callback: CallbackQuery) -> int | None:
    try:
        return int(callback.data.split(":", 1)[1])
    except (IndexError, ValueError):
        return None


@router.callback_query(F.data.startswith("copy:"))
async def cb_copy_prompt(callback: CallbackQuery):
    prompt_id = _callback_id(callback)
    with get_db_session() as db:
        saved = PromptService(db).get_saved(callback.from_user.id, prompt_id) if prompt_id else None
        text = saved.prompt if saved else None
    if text is None:
        await callback.answer("Prompt not found", show_alert=True)
        return
    await callback.message.answer(f"<code>{html.escape(text)}</code>", parse_mode=HTML)
    await callback.answer()


@router.callback_query(F.data.startswith("hist:"))
async def cb_history_prompt(callback: CallbackQuery):
    history_id = _callback_id(callback)
    with get_db_session() as db:
        entry = PromptService(db).get_history(callback.from_user.id, history_id) if history_id else None
        text = entry.prompt if entry else None
    if text is None:
        await callback.answer("Prompt not found", show_alert=True)
        return
    await callback.message.answer(f"<code>{html.escape(text)}</code>", parse_mode=HTML)
    await callback.answer()


@router.callback_query(F.data.startswith("default:"))
async def cb_set_default_prompt(callback: CallbackQuery):
    prompt_id = _callback_id(callback)
    with get_db_session() as db:
        ok = bool(prompt_id) and PromptService(db).set_default(callback.from_user.id, prompt_id)
    if not ok:
        await callback.answer("Prompt not found", show_alert=True)
        return
    await callback.message.edit_text("⭐ Default prompt updated")
    await callback.answer()


@router.callback_query(F.data.startswith("del:"))
async def cb_delete_prompt(callback: CallbackQuery):
    prompt_id = _callback_id(callback)
    with get_db_session() as db:
        ok = bool(prompt_id) and PromptService(db).delete(callback.from_user.id, prompt_id)
    if not ok:
        await callback.answer("Prompt not found", show_alert=True)
        return
    await callback.message.edit_text("🗑 Prompt deleted")
    await callback.answer()


@router.callback_query(F.data.startswith("quality:"))
async def cb_quality(callback: CallbackQuery):
    quality = callback.data.split(":", 1)[1]
    try:
        with get_db_session() as db:
            quality = UserSettingsService(db).set_quality(callback.from_user.id, quality)
    except ValueError:
        await callback.answer("Unsupported quality", show_alert=True)
        return
    await callback.message.edit_text(
        f"⚙️ <b>Settings</b>\n\nDefault quality: <code>{quality}</code>",
        parse_mode=HTML,
        reply_markup=quality_keyboard(quality),
    )
    await callback.answer(f"Default quality: {quality}")


# ===========================================
# Generation
# ===========================================

async def _photo_batch_ids(message: Message, single_image: bool) -> list[str]:
    """The whole album a photo belongs to, or just that photo (@s, no album, or album not cached)."""
    photo_id = largest_photo_id(message)
    if not photo_id:
        return []
    if message.media_group_id and not single_image:
        batch = await media_groups.collect(message.media_group_id)
        if batch:
            return batch
        # album sent before the bot started, or already swept
        logger.info("media_group_cache_miss", extra={"batch_id": message.media_group_id})
    return [photo_id]


def _prepare_request(user_id: int, params: ParsedParams) -> tuple[ServiceConfig, str, str, str]:
    """Service, service display name, prompt and quality. Records an explicit prompt in history."""
    with get_db_session() as db:
        service, service_name = resolve_service_config(db, user_id)
        build_generate_url(service)

        prompts = PromptService(db)
        if params.prompt:
            prompt = params.prompt
            prompts.add_history(user_id, prompt)
        else:
            default = prompts.get_default(user_id)
            prompt = default.prompt if default else settings.default_prompt

        quality = params.quality or UserSettingsService(db).get_quality(user_id)
    return service, service_name, prompt, quality


async def start_generation(message: Message, params: ParsedParams, image_file_ids: list[str]) -> None:
    """Validate, post the status message and hand the job to the generation worker."""
    if params.has_errors:
        await message.reply(params_error_text(params), parse_mode=HTML)
        return

    user_id = message.from_user.id
    try:
        service, service_name, prompt, quality = _prepare_request(user_id, params)
    except NoServiceConfigured as e:
        await message.reply(f"❌ {html.escape(str(e))}")
        return
    except InvalidBackendConfig as e:
        await message.reply(messages.invalid_service_text(str(e)), parse_mode=HTML)
        return

    if params.aspect_ratio:
        ratio_label = params.aspect_ratio
    elif image_file_ids:
        ratio_label = "Auto"
    else:
        ratio_label = f"{DEFAULT_ASPECT_RATIO} (default)"
    status = await message.reply(
        messages.processing_text(
            service_name,
            ratio_label,
            messages.quality_display(quality, bool(params.quality)),
            len(image_file_ids),
        ),
        parse_mode=HTML,
    )

    job = GenerationJob(
        user_id=user_id,
        chat_id=message.chat.id,
        message_id=message.message_id,
        status_message_id=status.message_id,
        prompt=prompt,
        quality=quality,
        quality_explicit=bool(params.quality),
        requested_ratio=params.aspect_ratio,
        image_file_ids=image_file_ids,
        service=service,
        service_name=service_name,
    )

    from app.core.celery_app import celery_app

    celery_app.send_task(
        "app.workers.tasks.generation.generate_image",
        args=[job.model_dump(mode="json")],
    )
    logger.info(
        "generation_dispatched",
        extra={
            "user_id": user_id,
            "chat_id": message.chat.id,
            "message_id": message.message_id,
            "image_count": len(image_file_ids),
            "service": service_name,
        },
    )


def _message_text(message: Message) -> str | None:
    """Prompt text of a message; None when the bot should stay silent."""
    text = message.text or message.caption or ""
    if is_group_chat(message):
        text = strip_group_prefix(text)
        if text is None:
            return None
    if text.startswith("/"):
        return None
    return text


@router.message(F.photo & ~F.caption & F.reply_to_message.text)
async def handle_photo_reply_to_text(message: Message):
    """Photo (or album) sent as a reply to a text message: the replied text is the prompt."""
    reply_text = message.reply_to_message.text
    if reply_text.startswith("/"):
        return
    params = parse_text_params(reply_text)
    if params.has_errors:
        await message.reply(params_error_text(params), parse_mode=HTML)
        return
    image_ids = await _photo_batch_ids(message, params.single_image_from_group)
    if message.media_group_id and len(image_ids) > 1 and image_ids[0] != largest_photo_id(message):
        # every album member replies to the text; the first one dispatches for the whole album
        return
    await start_generation(message, params, image_ids)


@router.message(F.sticker & F.reply_to_message.text)
async def handle_sticker_reply_to_text(message: Message):
    reply_text = message.reply_to_message.text
    if reply_text.startswith("/"):
        return
    params = parse_text_params(reply_text)
    image_id = sticker_file_id(message)
    await start_generation(message, params, [image_id] if image_id else [])


@router.message(F.text | (F.photo & F.caption))
async def handle_prompt_message(message: Message):
    """Text or captioned photo, optionally replying to images."""
    text = _message_text(message)
    if text is None:
        return
    params = parse_text_params(text)
    if params.has_errors:
        await message.reply(params_error_text(params), parse_mode=HTML)
        return

    image_ids: list[str] = []
    own_photo = largest_photo_id(message)
    if own_photo:
        image_ids.append(own_photo)

    reply = message.reply_to_message
    if reply is not None:
        if reply.photo:
            image_ids.extend(await _photo_batch_ids(reply, params.single_image_from_group))
        image_ids.extend(replied_non_photo_ids(reply))

    await start_generation(message, params, image_ids)


async def on_error(event: ErrorEvent, *args, **kwargs):
    """Global error handler."""
    logger.exception(
        "Error in handler",
        extra={"error": str(event.exception)},
    )


async def main():
    """Start the bot."""
    logger.info("Starting bot...")
    init_db()

    bot = Bot(token=settings.telegram_bot_token)
    dp = Dispatcher()

    dp.errors.register(on_error)
    dp.message.outer_middleware(AlbumCacheMiddleware())
    dp.include_router(router)

    await bot.delete_webhook(drop_pending_updates=False)

    stop_event = asyncio.Event()
    sweeper = asyncio.create_task(media_groups.run_sweeper(stop_event))

    logger.info("Bot started successfully!")
    try:
        await dp.start_polling(bot, allowed_updates=["message", "callback_query"])
    finally:
        stop_event.set()
        try:
            await asyncio.wait_for(sweeper, timeout=5)
        except asyncio.TimeoutError:
            sweeper.cancel()
        await bot.session.close()


if __name__ == "__main__":
    asyncio.run(main())
