# Copyright (c) 2021 Jeff Irion and contributors
#
# This file is part of the adb-host package.

"""Encode requests for the ADB server and parse its responses.

A request is a 4 digit uppercase hex length followed by the command.  A response starts with a 4 byte
status, ``b'OKAY'`` or ``b'FAIL'``.  What follows the status depends on the command, which is described
by a :class:`ResponseShape`.

.. rubric:: Contents

* :class:`ConnectionState`
* :class:`FramingResult`
* :class:`Outcome`
* :class:`ResponseFramer`

    * :meth:`ResponseFramer.end`
    * :meth:`ResponseFramer.feed`
    * :meth:`ResponseFramer.reset`
    * :meth:`ResponseFramer.start`

* :class:`ResponseShape`
* :func:`encode_request`
* :func:`parse_hex_length`

"""


from collections import namedtuple
from enum import Enum
import re

from . import constants
from .exceptions import InvalidCommandError, InvalidResponseError


_HEX_LENGTH_RE = re.compile(b'^[0-9a-fA-F]{4}$')


class ResponseShape(Enum):
    """What the ADB server sends after an ``b'OKAY'`` status.

    """
    #: Nothing; the command is complete as soon as the status arrives (e.g., ``host:transport:<serial>``)
    NO_PAYLOAD = 'no-payload'

    #: Optionally, a 4 digit hex length followed by that many bytes (e.g., ``host:version``)
    FIXED_LENGTH = 'fixed-length'

    #: A 4 digit hex length and its data, followed by anything else the server sends until it closes the socket
    LENGTH_PREFIXED_STREAM = 'length-prefixed-stream'

    #: Raw data until the server closes the socket (e.g., ``shell:<command>``)
    STREAM_UNTIL_CLOSE = 'stream-until-close'


class ConnectionState(Enum):
    """The state of a :class:`ResponseFramer`.

    """
    IDLE = 'idle'
    AWAITING_STATUS = 'awaiting-status'
    AWAITING_LENGTH_OR_DATA = 'awaiting-length-or-data'
    BUFFERING_UNTIL_CLOSE = 'buffering-until-close'


class Outcome(Enum):
    """The result of feeding data to a :class:`ResponseFramer`.

    """
    NEED_MORE = 'need-more'
    COMPLETE = 'complete'
    FAILED = 'failed'


#: ``payload`` is set for a ``COMPLETE`` outcome (it may be ``None``); ``error`` is set for a ``FAILED`` outcome
FramingResult = namedtuple('FramingResult', ['outcome', 'payload', 'error'])

NEED_MORE = FramingResult(Outcome.NEED_MORE, None, None)


def encode_request(command):
    """Build the frame that sends ``command`` to the ADB server.

    Parameters
    ----------
    command : str
        The command, e.g., ``'host:version'``

    Returns
    -------
    bytes
        The length of the UTF-8 encoded command as 4 uppercase hex digits, followed by the command

    Raises
    ------
    adb_host.exceptions.InvalidCommandError
        ``command`` is not a string, is empty, or is too long for the length prefix

    """
    if not isinstance(command, str):
        raise InvalidCommandError('Expected command to be a string')

    if not command:
        raise InvalidCommandError('Expected command to be a non-empty string')

    data = command.encode('utf-8')
    if len(data) > constants.MAX_COMMAND_LENGTH:
        raise InvalidCommandError('Command is {} bytes long; the maximum is {}'.format(len(data), constants.MAX_COMMAND_LENGTH))

    return b'%04X' % len(data) + data


def parse_hex_length(data):
    """Parse a 4 digit hex length field.

    Parameters
    ----------
    data : bytes, bytearray
        The length field

    Returns
    -------
    int, None
        The length, or ``None`` if ``data`` is not 4 hex digits

    """
    data = bytes(data)
    if not _HEX_LENGTH_RE.match(data):
        return None

    return int(data, 16)


class ResponseFramer(object):
    """A state machine that turns the chunks read from the socket into a single response.

    The framer does no I/O.  The owner calls :meth:`ResponseFramer.start` when it sends a command,
    :meth:`ResponseFramer.feed` for every chunk that it reads, and :meth:`ResponseFramer.end` if the
    server closes the socket.

    Parameters
    ----------
    shape : ResponseShape
        The kind of response that is expected for the next command

    Attributes
    ----------
    buffer : bytearray
        Data that has been received but not yet consumed
    length : int, None
        The length of the payload, if it has been read
    shape : ResponseShape
        The kind of response that is expected for the current command
    state : ConnectionState
        The current state

    """
    def __init__(self, shape=ResponseShape.FIXED_LENGTH):
        self.shape = shape
        self.state = ConnectionState.IDLE
        self.buffer = bytearray()
        self.length = None

    @property
    def is_fresh(self):
        """Whether a command was sent and not a single byte of its response has arrived.

        Returns
        -------
        bool
            Whether the state is ``AWAITING_STATUS`` and the buffer is empty

        """
        return self.state is ConnectionState.AWAITING_STATUS and not self.buffer

    def reset(self):
        """Discard any buffered data and go back to ``IDLE``.

        """
        self.state = ConnectionState.IDLE
        self.buffer = bytearray()
        self.length = None

    def start(self, shape=None):
        """Get ready for the response to a command that was just sent.

        Parameters
        ----------
        shape : ResponseShape, None
            The kind of response that is expected; if it is ``None``, the current ``shape`` is kept

        """
        if shape is not None:
            self.shape = shape

        self.reset()
        self.state = ConnectionState.AWAITING_STATUS

    def feed(self, data):
        """Process a chunk of data read from the socket.

        1. In the ``IDLE`` state, ignore the data
        2. Append the data to the buffer
        3. In the ``AWAITING_STATUS`` state, read the status via :meth:`ResponseFramer._read_status`; this may
           finish the response or move on to ``AWAITING_LENGTH_OR_DATA``
        4. In the ``AWAITING_LENGTH_OR_DATA`` state, read the length and the payload via
           :meth:`ResponseFramer._read_length_or_data`
        5. In the ``BUFFERING_UNTIL_CLOSE`` state, keep the data until :meth:`ResponseFramer.end` is called


        Parameters
        ----------
        data : bytes
            The data that was read

        Returns
        -------
        FramingResult
            Whether more data is needed, the response is complete, or the server reported a failure

        Raises
        ------
        adb_host.exceptions.InvalidResponseError
            The response does not follow the protocol; the framer is reset to ``IDLE``

        """
        if self.state is ConnectionState.IDLE:
            return NEED_MORE

        self.buffer += data

        if self.state is ConnectionState.AWAITING_STATUS:
            result = self._read_status()
            if result is not None:
                return result

        if self.state is ConnectionState.AWAITING_LENGTH_OR_DATA:
            return self._read_length_or_data()

        return NEED_MORE

    def end(self):
        """Handle the server closing the socket.

        Whatever has been buffered becomes the payload, or ``None`` if nothing was buffered.  A ``b'FAIL'``
        response is still reported as a failure, even if the error message was cut short.

        Returns
        -------
        FramingResult
            A ``COMPLETE`` or ``FAILED`` result

        Raises
        ------
        adb_host.exceptions.InvalidResponseError
            The socket was closed in the middle of the status

        """
        state = self.state
        buffer = bytes(self.buffer)
        self.reset()

        if state is ConnectionState.AWAITING_STATUS and buffer:
            if buffer[:constants.STATUS_SIZE] != constants.FAIL:
                raise InvalidResponseError('Connection closed before a complete status was received: {!r}'.format(buffer))

            message = buffer[constants.STATUS_SIZE + constants.LENGTH_PREFIX_SIZE:]
            length = parse_hex_length(buffer[constants.STATUS_SIZE:constants.STATUS_SIZE + constants.LENGTH_PREFIX_SIZE])
            if length:
                message = message[:length]

            return FramingResult(Outcome.FAILED, None, message.decode('utf-8', 'replace'))

        return FramingResult(Outcome.COMPLETE, buffer or None, None)

    def _complete(self, payload):
        self.reset()
        return FramingResult(Outcome.COMPLETE, payload, None)

    def _read_status(self):
        """Read the status at the start of the buffer.

        Returns
        -------
        FramingResult, None
            The result, or ``None`` if the state is now ``AWAITING_LENGTH_OR_DATA`` and the rest of the
            buffer should be processed

        """
        if len(self.buffer) < constants.STATUS_SIZE:
            return NEED_MORE

        status = bytes(self.buffer[:constants.STATUS_SIZE])
        if status not in constants.STATUSES:
            self.reset()
            raise InvalidResponseError('Unknown ADB status {!r}'.format(status))

        if status == constants.FAIL:
            return self._read_failure()

        del self.buffer[:constants.STATUS_SIZE]

        if self.shape is ResponseShape.NO_PAYLOAD:
            return self._complete(None)

        if not self.buffer:
            if self.shape in (ResponseShape.STREAM_UNTIL_CLOSE, ResponseShape.LENGTH_PREFIXED_STREAM):
                self.state = ConnectionState.BUFFERING_UNTIL_CLOSE
                return NEED_MORE

            return self._complete(None)

        # The rest of the buffer is the start of the stream
        if self.shape is ResponseShape.STREAM_UNTIL_CLOSE:
            self.state = ConnectionState.BUFFERING_UNTIL_CLOSE
            return NEED_MORE

        self.state = ConnectionState.AWAITING_LENGTH_OR_DATA
        self.length = None
        return None

    def _read_failure(self):
        """Read a ``b'FAIL'`` response, which is followed by a 4 digit hex length and the error message.

        Nothing is consumed until the whole message is available.

        """
        header_size = constants.STATUS_SIZE + constants.LENGTH_PREFIX_SIZE
        if len(self.buffer) < header_size:
            return NEED_MORE

        length = parse_hex_length(self.buffer[constants.STATUS_SIZE:header_size]) or 0
        if len(self.buffer) < header_size + length:
            return NEED_MORE

        message = bytes(self.buffer[header_size:header_size + length])
        self.reset()
        return FramingResult(Outcome.FAILED, None, message.decode('utf-8', 'replace'))

    def _read_length_or_data(self):
        """Read the length of the payload (if it is not yet known) and then the payload.

        """
        if self.length is None and len(self.buffer) >= constants.LENGTH_PREFIX_SIZE:
            length_field = bytes(self.buffer[:constants.LENGTH_PREFIX_SIZE])
            del self.buffer[:constants.LENGTH_PREFIX_SIZE]
            self.length = parse_hex_length(length_field)
            if self.length is None and self.shape is not ResponseShape.LENGTH_PREFIXED_STREAM:
                self.reset()
                raise InvalidResponseError('Invalid length prefix {!r}'.format(length_field))

        if self.length == 0:
            return self._complete(None)

        if self.length is None:
            if self.shape is ResponseShape.LENGTH_PREFIXED_STREAM:
                self.state = ConnectionState.BUFFERING_UNTIL_CLOSE
                return NEED_MORE

            truncated = bytes(self.buffer)
            self.reset()
            raise InvalidResponseError('Truncated length prefix {!r}'.format(truncated))

        if len(self.buffer) < self.length:
            return NEED_MORE

        # The payload is the start of the stream
        if self.shape is ResponseShape.LENGTH_PREFIXED_STREAM:
            self.state = ConnectionState.BUFFERING_UNTIL_CLOSE
            return NEED_MORE

        return self._complete(bytes(self.buffer[:self.length]))
