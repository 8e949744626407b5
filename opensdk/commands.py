"""
コマンド分類 — ドライバコマンド名から報告用の記述子を引く

低レベルのドライバコマンド名を正規化し、パラメータ形状・報告可否・
リダクション適用可否・要素スコープかどうかを表す記述子に対応付ける。

主な構成:
  - CommandName: コマンド名の列挙
  - CommandDescriptor: コマンド種別ごとのメタ情報
  - Command: 発行されるコマンド（名前 + 順序付きパラメータ + 対象要素）
  - classify(): コマンド名 → 記述子
"""

from __future__ import annotations

import copy
import enum
import logging
from dataclasses import dataclass, field
from typing import Any, Mapping, Optional

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# コマンド名
# ---------------------------------------------------------------------------

class CommandName(str, enum.Enum):
    """ドライバコマンド名。"""

    NEW_SESSION = "newSession"
    QUIT = "quit"
    CLOSE = "close"
    SET_TIMEOUT = "setTimeout"
    GET_TIMEOUT = "getTimeout"
    IMPLICITLY_WAIT = "implicitlyWait"
    SET_IMPLICIT_TIMEOUT = "setImplicitTimeout"

    GET = "get"
    GET_CURRENT_URL = "getCurrentUrl"
    GET_TITLE = "getTitle"
    GET_PAGE_SOURCE = "getPageSource"
    GO_BACK = "goBack"
    GO_FORWARD = "goForward"
    REFRESH = "refresh"

    FIND_ELEMENT = "findElement"
    FIND_ELEMENTS = "findElements"
    FIND_CHILD_ELEMENT = "findChildElement"
    FIND_CHILD_ELEMENTS = "findChildElements"
    GET_ACTIVE_ELEMENT = "getActiveElement"

    CLICK_ELEMENT = "clickElement"
    CLEAR_ELEMENT = "clearElement"
    SUBMIT_ELEMENT = "submitElement"
    SEND_KEYS_TO_ELEMENT = "sendKeysToElement"
    SEND_KEYS_TO_ACTIVE_ELEMENT = "sendKeysToActiveElement"
    GET_ELEMENT_TEXT = "getElementText"
    GET_ELEMENT_TAG_NAME = "getElementTagName"
    GET_ELEMENT_ATTRIBUTE = "getElementAttribute"
    GET_ELEMENT_PROPERTY = "getElementProperty"
    GET_ELEMENT_RECT = "getElementRect"
    IS_ELEMENT_SELECTED = "isElementSelected"
    IS_ELEMENT_ENABLED = "isElementEnabled"
    IS_ELEMENT_DISPLAYED = "isElementDisplayed"
    TAKE_ELEMENT_SCREENSHOT = "takeElementScreenshot"

    EXECUTE_SCRIPT = "executeScript"
    EXECUTE_ASYNC_SCRIPT = "executeAsyncScript"
    SCREENSHOT = "screenshot"

    GET_CURRENT_WINDOW_HANDLE = "getCurrentWindowHandle"
    GET_WINDOW_HANDLES = "getWindowHandles"
    SWITCH_TO_WINDOW = "switchToWindow"
    SWITCH_TO_FRAME = "switchToFrame"
    SWITCH_TO_FRAME_PARENT = "switchToFrameParent"
    MAXIMIZE_WINDOW = "maximizeWindow"
    SET_WINDOW_RECT = "setWindowRect"
    GET_WINDOW_RECT = "getWindowRect"

    ADD_COOKIE = "addCookie"
    GET_ALL_COOKIES = "getCookies"
    DELETE_COOKIE = "deleteCookie"
    DELETE_ALL_COOKIES = "deleteAllCookies"

    ACCEPT_ALERT = "acceptAlert"
    DISMISS_ALERT = "dismissAlert"
    GET_ALERT_TEXT = "getAlertText"
    SET_ALERT_TEXT = "setAlertValue"

    ACTIONS = "actions"
    CLEAR_ACTIONS = "clearActionState"


# モバイル（WebDriver クライアント）側の名前 → 正規のコマンド名
_ALIASES: dict[str, CommandName] = {
    "takeScreenshot": CommandName.SCREENSHOT,
}


def resolve_command_name(name: str | CommandName) -> str:
    """エイリアスを解決した正規のコマンド名を返す。

    未知の名前はそのまま返す。
    """
    if isinstance(name, CommandName):
        return name.value
    alias = _ALIASES.get(name)
    return alias.value if alias is not None else name


# ---------------------------------------------------------------------------
# コマンド記述子
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class CommandDescriptor:
    """コマンド種別ごとのメタ情報。

    Attributes:
        name: 正規のコマンド名
        parameters: パラメータ名（レポート上の並び順）
        reportable: DriverCommandReport を生成するか
        redactable: 入力値のリダクション対象か（キー入力系のみ）
        element_scoped: 既に取得済みの要素に対する操作か
    """

    name: str
    parameters: tuple[str, ...] = ()
    reportable: bool = True
    redactable: bool = False
    element_scoped: bool = False


def _d(name: CommandName, *parameters: str, **flags: bool) -> CommandDescriptor:
    return CommandDescriptor(name=name.value, parameters=parameters, **flags)


_ELEMENT = {"element_scoped": True}

COMMAND_TABLE: dict[str, CommandDescriptor] = {
    d.name: d
    for d in (
        # 報告しないコマンド
        _d(CommandName.NEW_SESSION, "desiredCapabilities", reportable=False),
        _d(CommandName.QUIT, reportable=False),
        _d(CommandName.SET_TIMEOUT, "implicit", "pageLoad", "script", reportable=False),
        _d(CommandName.SET_IMPLICIT_TIMEOUT, "ms", reportable=False),
        # ナビゲーション
        _d(CommandName.GET, "url"),
        _d(CommandName.GET_CURRENT_URL),
        _d(CommandName.GET_TITLE),
        _d(CommandName.GET_PAGE_SOURCE),
        _d(CommandName.GO_BACK),
        _d(CommandName.GO_FORWARD),
        _d(CommandName.REFRESH),
        _d(CommandName.CLOSE),
        _d(CommandName.GET_TIMEOUT),
        _d(CommandName.IMPLICITLY_WAIT, "ms"),
        # 要素検索
        _d(CommandName.FIND_ELEMENT, "using", "value"),
        _d(CommandName.FIND_ELEMENTS, "using", "value"),
        _d(CommandName.FIND_CHILD_ELEMENT, "id", "using", "value", **_ELEMENT),
        _d(CommandName.FIND_CHILD_ELEMENTS, "id", "using", "value", **_ELEMENT),
        _d(CommandName.GET_ACTIVE_ELEMENT),
        # 要素操作
        _d(CommandName.CLICK_ELEMENT, "id", **_ELEMENT),
        _d(CommandName.CLEAR_ELEMENT, "id", **_ELEMENT),
        _d(CommandName.SUBMIT_ELEMENT, "id", **_ELEMENT),
        _d(
            CommandName.SEND_KEYS_TO_ELEMENT, "id", "text", "value",
            redactable=True, element_scoped=True,
        ),
        _d(CommandName.SEND_KEYS_TO_ACTIVE_ELEMENT, "text", "value", redactable=True),
        _d(CommandName.GET_ELEMENT_TEXT, "id", **_ELEMENT),
        _d(CommandName.GET_ELEMENT_TAG_NAME, "id", **_ELEMENT),
        _d(CommandName.GET_ELEMENT_ATTRIBUTE, "id", "name", **_ELEMENT),
        _d(CommandName.GET_ELEMENT_PROPERTY, "id", "name", **_ELEMENT),
        _d(CommandName.GET_ELEMENT_RECT, "id", **_ELEMENT),
        _d(CommandName.IS_ELEMENT_SELECTED, "id", **_ELEMENT),
        _d(CommandName.IS_ELEMENT_ENABLED, "id", **_ELEMENT),
        _d(CommandName.IS_ELEMENT_DISPLAYED, "id", **_ELEMENT),
        _d(CommandName.TAKE_ELEMENT_SCREENSHOT, "id", **_ELEMENT),
        # スクリプト・スクリーンショット
        _d(CommandName.EXECUTE_SCRIPT, "script", "args"),
        _d(CommandName.EXECUTE_ASYNC_SCRIPT, "script", "args"),
        _d(CommandName.SCREENSHOT),
        # ウィンドウ・フレーム
        _d(CommandName.GET_CURRENT_WINDOW_HANDLE),
        _d(CommandName.GET_WINDOW_HANDLES),
        _d(CommandName.SWITCH_TO_WINDOW, "handle", "name"),
        _d(CommandName.SWITCH_TO_FRAME, "id"),
        _d(CommandName.SWITCH_TO_FRAME_PARENT),
        _d(CommandName.MAXIMIZE_WINDOW),
        _d(CommandName.SET_WINDOW_RECT, "x", "y", "width", "height"),
        _d(CommandName.GET_WINDOW_RECT),
        # Cookie
        _d(CommandName.ADD_COOKIE, "cookie"),
        _d(CommandName.GET_ALL_COOKIES),
        _d(CommandName.DELETE_COOKIE, "name"),
        _d(CommandName.DELETE_ALL_COOKIES),
        # アラート
        _d(CommandName.ACCEPT_ALERT),
        _d(CommandName.DISMISS_ALERT),
        _d(CommandName.GET_ALERT_TEXT),
        _d(CommandName.SET_ALERT_TEXT, "text"),
        # アクション
        _d(CommandName.ACTIONS, "actions"),
        _d(CommandName.CLEAR_ACTIONS),
    )
}

NON_REPORTED_COMMANDS: frozenset[str] = frozenset(
    name for name, d in COMMAND_TABLE.items() if not d.reportable
)


def classify(name: str | CommandName) -> CommandDescriptor:
    """コマンド名に対応する記述子を返す。

    テーブルにない名前は、報告対象・リダクション対象外の
    汎用記述子として扱う（呼び出しそのものは妨げない）。

    Args:
        name: コマンド名（エイリアス可）

    Returns:
        コマンド記述子
    """
    resolved = resolve_command_name(name)
    descriptor = COMMAND_TABLE.get(resolved)
    if descriptor is None:
        logger.debug("未登録のコマンドを汎用記述子で扱います: %s", resolved)
        descriptor = CommandDescriptor(name=resolved)
    return descriptor


# ---------------------------------------------------------------------------
# Command 本体
# ---------------------------------------------------------------------------

@dataclass
class Command:
    """発行されるドライバコマンド。

    Attributes:
        name: 正規のコマンド名
        parameters: パラメータ名 → 値（挿入順を保持）
        element_id: 対象要素の ID（要素スコープのコマンドのみ）
    """

    name: str
    parameters: dict[str, Any] = field(default_factory=dict)
    element_id: Optional[str] = None

    def __post_init__(self) -> None:
        self.name = resolve_command_name(self.name)

    @classmethod
    def create(
        cls,
        name: str | CommandName,
        parameters: Optional[Mapping[str, Any]] = None,
        *,
        element_id: Optional[str] = None,
    ) -> Command:
        """コマンドを生成する。要素 ID は "id" パラメータにも反映する。"""
        params = dict(parameters or {})
        if element_id is not None:
            params["id"] = element_id
        elif "id" in params and classify(name).element_scoped:
            element_id = params["id"]
        return cls(name=name, parameters=params, element_id=element_id)

    @property
    def descriptor(self) -> CommandDescriptor:
        return classify(self.name)

    def set_parameter(self, key: str, value: Any) -> Command:
        self.parameters[key] = value
        return self

    def get_parameter(self, key: str, default: Any = None) -> Any:
        return self.parameters.get(key, default)

    def snapshot(self) -> Command:
        """レポート用のディープコピーを返す。

        送信したコマンドそのものは変更しない。
        """
        return Command(
            name=self.name,
            parameters=copy.deepcopy(self.parameters),
            element_id=self.element_id,
        )

    def report_parameters(self) -> dict[str, Any]:
        """記述子のパラメータ順に並べ替えたパラメータを返す。

        記述子にないパラメータは元の順序のまま末尾に並ぶ。
        """
        known = self.descriptor.parameters
        ordered = {k: self.parameters[k] for k in known if k in self.parameters}
        for key, value in self.parameters.items():
            if key not in ordered:
                ordered[key] = value
        return ordered
