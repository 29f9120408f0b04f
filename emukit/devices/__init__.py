"""Guest devices: serial port, clock and alarms, keyboard, VGA, audio and a device hub."""