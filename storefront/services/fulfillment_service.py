# storefront/services/fulfillment_service.py
import webbrowser
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Dict, List, Union
from urllib.parse import quote

from storefront.domain.errors import ContactRequiredError, DownloadError
from storefront.domain.schemas import CartItem, CustomItem, CustomerInfo
from storefront.services.download_client import DownloadClient
from storefront.services.notification_service import NotificationService
from storefront.utils.logging import get_logger
from storefront.utils.settings import DOWNLOAD_DIR

logger = get_logger(__name__)


@dataclass(frozen=True)
class DownloadAction:
    item_id: str
    fallback_name: str | None = None
    label: str = "Download"


@dataclass(frozen=True)
class ScheduleAction:
    url: str
    label: str = "Schedule"


@dataclass(frozen=True)
class ComposeEmailAction:
    to: str
    subject: str
    body: str
    label: str = "Email Us"

    @property
    def url(self) -> str:
        return f"mailto:{self.to}?subject={quote(self.subject)}&body={quote(self.body)}"


@dataclass(frozen=True)
class ContactFormAction:
    fields: Dict[str, str]
    label: str = "Contact Us"


FulfillmentAction = Union[DownloadAction, ScheduleAction, ComposeEmailAction, ContactFormAction]


@dataclass
class FulfillmentOutcome:
    item: CartItem
    action: FulfillmentAction
    ok: bool = True
    path: Path | None = None
    message: str = ""
    #set when the download endpoint redirected a standard item to contact
    fell_back: bool = field(default=False)


def _subject(item: CartItem) -> str:
    if isinstance(item, CustomItem):
        return f"Custom request: {item.title} - {item.custom_option_name}"
    return f"Request: {item.title}"


def _message(item: CartItem, customer: CustomerInfo | None) -> str:
    option = f" ({item.custom_option_name})" if isinstance(item, CustomItem) else ""
    who = f"{customer.name} " if customer and customer.name else ""
    return f"Hello, {who}has purchased {item.title}{option} and would like to get started."


def resolve_contact(item: CartItem, customer: CustomerInfo | None = None) -> FulfillmentAction:
    """Schedule link, then contact email, then the generic contact form."""
    fulfillment = item.fulfillment if isinstance(item, CustomItem) else None

    if fulfillment and fulfillment.schedule_link:
        return ScheduleAction(url=fulfillment.schedule_link)

    if fulfillment and fulfillment.contact_email:
        return ComposeEmailAction(
            to=fulfillment.contact_email,
            subject=_subject(item),
            body=_message(item, customer),
        )

    form = {
        "subject": _subject(item),
        "message": _message(item, customer),
        "item_id": item.id,
        "item_title": item.title,
    }
    if customer:
        form.update({"from_name": customer.name, "from_email": customer.email, "phone": customer.phone})
    return ContactFormAction(fields=form)


def resolve(item: CartItem, customer: CustomerInfo | None = None) -> FulfillmentAction:
    """
    Post-purchase action for one line, first match wins:
    standard item -> download; custom item -> schedule link, contact email,
    generic contact form. A custom item is never offered a download even
    when the record carries a file name.
    """
    if not item.is_custom:
        return DownloadAction(item_id=item.id, fallback_name=item.file_name)
    return resolve_contact(item, customer)


class FulfillmentService:
    def __init__(
        self,
        download_client: DownloadClient | None = None,
        notification_service: NotificationService | None = None,
        opener: Callable[[str], object] = webbrowser.open_new_tab,
        download_dir: str | Path = DOWNLOAD_DIR,
    ):
        self.download_client = download_client or DownloadClient()
        self.notification_service = notification_service or NotificationService()
        self.opener = opener
        self.download_dir = Path(download_dir)

    def actions_for(self, items: List[CartItem], customer: CustomerInfo | None = None) -> List[FulfillmentAction]:
        return [resolve(i, customer) for i in items]

    def execute(self, item: CartItem, action: FulfillmentAction, customer: CustomerInfo) -> FulfillmentOutcome:
        if isinstance(action, DownloadAction):
            return self._download(item, action, customer)

        if isinstance(action, ScheduleAction):
            logger.info(f"Opening schedule link for {item.id}")
            self.opener(action.url)
            return FulfillmentOutcome(item, action)

        if isinstance(action, ComposeEmailAction):
            logger.info(f"Opening email composer to {action.to} for {item.id}")
            self.opener(action.url)
            return FulfillmentOutcome(item, action)

        #the form is shown prefilled, sending waits for submit_contact_form
        return FulfillmentOutcome(item, action)

    def _download(self, item: CartItem, action: DownloadAction, customer: CustomerInfo) -> FulfillmentOutcome:
        try:
            downloaded = self.download_client.download(action.item_id, customer.email, action.fallback_name)
        except ContactRequiredError as e:
            logger.warning(f"Item {item.id} is not downloadable, falling back to contact: {e.message}")
            fallback = resolve_contact(item, customer)
            outcome = self.execute(item, fallback, customer)
            outcome.message = e.message
            outcome.fell_back = True
            return outcome
        except DownloadError as e:
            return FulfillmentOutcome(item, action, ok=False, message=e.message)

        path = downloaded.save(self.download_dir)
        return FulfillmentOutcome(item, action, path=path, message=f"{downloaded.filename} downloaded")

    def fulfill(self, items: List[CartItem], customer: CustomerInfo) -> List[FulfillmentOutcome]:
        outcomes = []
        for item in items:
            outcome = self.execute(item, resolve(item, customer), customer)
            if not outcome.ok:
                logger.error(f"Fulfillment of {item.id} failed: {outcome.message}")
            outcomes.append(outcome)
        return outcomes

    def submit_contact_form(self, action: ContactFormAction, message: str | None = None):
        params = dict(action.fields)
        if message:
            params["message"] = message
        return self.notification_service.send_contact_request(params)
