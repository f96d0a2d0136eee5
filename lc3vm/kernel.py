from __future__ import print_function

import sys

from metakernel import Magic, MetaKernel

from ._version import __version__
from .console import KernelConsole
from .lc3 import LC3, LC3Error, lc_hex


def parse_address(value):
    """ Accept xFFFF, 0xFFFF or a plain number """
    if value is None or isinstance(value, int):
        return value
    value = str(value)
    if value.lower().startswith("x"):
        value = "0" + value
    return int(value, 0) & 0xFFFF


class LC3Magic(Magic):

    def line_exe(self):
        """
        %exe - run the loaded images from x3000

        Registers are reset first; memory is kept. When the program
        halts, the instruction count and registers are shown.
        """
        lc3 = self.kernel.lc3
        lc3.reset_registers()
        lc3.instruction_count = 0
        try:
            lc3.run()
        except LC3Error as exc:
            self.kernel.Error("\nRuntime error:\n    %s\n" % exc)
            return
        except KeyboardInterrupt:
            self.kernel.Error("Keyboard Interrupt!")
            return
        finally:
            lc3.console.flush()
        lc3.Print("=" * 60)
        lc3.Print("Computation completed")
        lc3.Print("Instructions:", lc3.instruction_count)
        lc3.dump_registers()

    def line_regs(self):
        """
        %regs - show the registers and condition flags
        """
        self.kernel.lc3.dump_registers()

    def line_dump(self, start=None, stop=None):
        """
        %dump [START [STOP]] - list memory in hex

        Addresses are written xFFFF. At most 100 words are shown.
        """
        self.kernel.lc3.dump(parse_address(start), parse_address(stop))

    def line_dis(self, start=None, stop=None):
        """
        %dis [START [STOP]] - list memory as LC-3 instructions
        """
        self.kernel.lc3.dump(parse_address(start), parse_address(stop),
                             disassemble=True)

    def line_reset(self):
        """
        %reset - clear memory and registers
        """
        self.kernel.lc3.initialize()
        self.kernel.lc3.dump_registers()


class LC3VMKernel(MetaKernel):
    implementation = 'LC3VM'
    implementation_version = __version__
    language = 'LC3 object code'
    language_version = '0.1'
    banner = "LC-3 virtual machine - load object images and run them"
    language_info = {
        'name': 'lc3',
        'mimetype': 'text/plain',
        'file_extension': '.obj',
    }
    kernel_json = {
        "argv": [
            sys.executable,
            "-m", "lc3vm.kernel",
            "-f", "{connection_file}"
        ],
        "display_name": "LC-3 VM",
        "language": "lc3",
        "name": "lc3vm",
    }

    def __init__(self, *args, **kwargs):
        super(LC3VMKernel, self).__init__(*args, **kwargs)
        self.lc3 = LC3(self, KernelConsole(self))
        self.register_magics(LC3Magic)

    def get_usage(self):
        return """This is the LC-3 virtual machine Jupyter kernel.

Each line of a cell is the path of an object image to load. The first
word of an image is its origin address.

Magic Directives:

 %dis [STARTHEX [STOPHEX]]          - list memory as instructions
 %dump [STARTHEX [STOPHEX]]         - list memory in hex
 %exe                               - run from x3000
 %regs                              - show registers
 %reset                             - clear memory and registers

HEX values begin with an 'x' and are composed of 4 0-F digits or letters.
"""

    def get_completions(self, info):
        token = info["help_obj"]
        return [item for item in ["%dis", "%dump", "%exe", "%regs", "%reset"]
                if item.startswith(token)]

    def do_execute_direct(self, code):
        for line in code.splitlines():
            filename = line.strip()
            if not filename:
                continue
            try:
                origin, count = self.lc3.load_image_file(filename)
            except LC3Error as exc:
                self.Error(str(exc))
                return
            self.Print("Loaded %s: %d words at %s" % (filename, count, lc_hex(origin)))

    def repr(self, data):
        return repr(data)


if __name__ == '__main__':
    LC3VMKernel.run_as_main()
