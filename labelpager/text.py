"""Centralized user-facing text for labelpager."""

from __future__ import annotations

class Styles:
    ERROR = "red"
    WARNING = "yellow"
    SUCCESS = "green"
    INFO = "dim"
    TITLE = "bold cyan"
    TABLE_HEADER = "bold magenta"


class Messages:
    APP_HELP = "labelpager – page through image datasets and their YOLO label sidecars."
    HELP_VERSION = "Show version and exit."
    HELP_VERBOSE = "Log cache activity to the terminal."
    HELP_INDEX_PATH = "Image directory to list in natural order."
    HELP_INDEX_LIMIT = "Maximum number of rows to display (0 = all)."
    HELP_STATUS_PATH = "Image directory to open a paging session on."
    HELP_STATUS_START = "Image (filename or path) the cursor starts on."
    HELP_STATUS_GOTO = "Move the cursor to this index after opening the session."
    HELP_LABELS_IMAGE = "Image whose labels and detections are shown."
    HELP_PREV_RADIUS = "Images to preload behind the cursor."
    HELP_NEXT_RADIUS = "Images to preload ahead of the cursor."
    HELP_KEEP_BUFFER = "Extra images kept on each side before eviction."
    HELP_SET_PREV_RADIUS = "Set the default number of images preloaded behind the cursor."
    HELP_SET_NEXT_RADIUS = "Set the default number of images preloaded ahead of the cursor."
    HELP_SET_KEEP_BUFFER = "Set the default eviction margin."
    HELP_SET_LOAD_CONCURRENCY = "Set how many images a prefetch pass loads in parallel."
    HELP_SET_BACKGROUND = "Run prefetch passes in the background (true/false)."
    HELP_RESET_CONFIG = "Restore the default configuration."
    HELP_SHOW_CONFIG = "Show current configuration."

    ERROR_EMPTY_COLLECTION = "No images found in {path}."
    ERROR_ITEM_NOT_FOUND = "{item} is not part of the indexed collection."
    ERROR_WINDOW_INVALID = "{field} must be a non-negative integer, got {value!r}."
    ERROR_SESSION_CLOSED = "The paging session has been closed."
    ERROR_SESSION_NOT_INITIALIZED = "The paging session has not been initialized."
    ERROR_CONFIG_JSON_INVALID = "Config payload must be a JSON object."
    ERROR_CONFIG_UNKNOWN_FIELDS = "Unknown config fields: {fields}."
    ERROR_CONFIG_VALUE_INVALID = "Invalid value for {field}."
    ERROR_BOOLEAN_INVALID = "Expected a boolean value (true/false), got {value}."
    ERROR_INDEX_OUT_OF_RANGE = "Index {index} is outside 0..{last}; cursor left unchanged."

    INFO_INDEX_SUMMARY = "{count} images under {path}"
    INFO_LABELS_DIR = "Labels directory: {path}"
    INFO_CURRENT_ITEM = "Current: {filename} ({position}/{total})"
    INFO_CACHE_STATUS = "Cached {cached} of {total} images; current cached: {icon}"
    INFO_CACHED_INDICES = "Cached indices: {indices}"
    INFO_WINDOW = "Window: prev={prev} next={next} keep={keep} (max {max_entries} entries)"
    INFO_NO_LABELS = "No labels for {filename}."
    INFO_NO_DETECTIONS = "No detections for {filename}."
    INFO_CLASSES_FOUND = "{count} class names loaded."
    INFO_CONFIG_UPDATED = "Configuration updated."
    INFO_CONFIG_RESET = "Configuration reset to defaults."
    INFO_CONFIG_SUMMARY = (
        "Previous radius: {prev}\n"
        "Next radius: {next}\n"
        "Keep buffer: {keep}\n"
        "Load concurrency: {concurrency}\n"
        "Background prefetch: {background}"
    )

    TABLE_TITLE_INDEX = "Collection order"
    TABLE_TITLE_LABELS = "Labels"
    TABLE_TITLE_DETECTIONS = "Detections"
    TABLE_HEADER_INDEX = "#"
    TABLE_HEADER_FILE = "File"
    TABLE_HEADER_SIDECAR = "Labels file"
    TABLE_HEADER_CLASS = "Class"
    TABLE_HEADER_BOX = "cx cy w h"
    TABLE_HEADER_CONF = "Conf"
